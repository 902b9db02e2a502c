"""Tests for the account merge executor"""

from unittest.mock import patch

import pytest
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import OperationalError

from flask_app.models import (
    Achievement,
    AdminNote,
    AutoAcceptRule,
    AutoApproval,
    CustomLabel,
    Friendship,
    FriendRequest,
    GroupBooking,
    GroupInvitation,
    Notification,
    NotificationGroup,
    NotificationGroupMember,
    Passkey,
    RegularVolunteer,
    Resource,
    RestaurantManager,
    ShiftTemplate,
    Signup,
    Survey,
    SurveyAssignment,
    User,
    UserAchievement,
    UserCustomLabel,
    db,
)
from flask_app.user_merge import (
    MERGE_RELATIONS,
    AccountDeletedDuringMergeError,
    AdminNotAuthorizedError,
    AdminNotFoundError,
    MergeErrorCode,
    PendingChangesError,
    SameAccountError,
    SingletonOutcome,
    SourceNotFoundError,
    TargetNotFoundError,
    TransactionFailedError,
    TransferCount,
    UserMergeService,
)


def _count(model, *criteria):
    return db.session.scalar(select(func.count()).select_from(model).where(*criteria))


def _user_exists(user_id):
    return _count(User, User.id == user_id) == 1


def _signup(user, shift):
    signup = Signup(user_id=user.id, shift_id=shift.id)
    db.session.add(signup)
    return signup


def _friends(a_id, b_id, initiated_by_id=None):
    db.session.add_all(
        [
            Friendship(user_id=a_id, friend_id=b_id, initiated_by_id=initiated_by_id or a_id),
            Friendship(user_id=b_id, friend_id=a_id, initiated_by_id=initiated_by_id or a_id),
        ]
    )


def _friend_pairs():
    return set(db.session.execute(select(Friendship.user_id, Friendship.friend_id)).all())


def _seed_every_kind(user, other, shift, shift_type):
    """Give ``user`` one row of every kind that references an account."""
    achievement = Achievement(name=f"Badge {user.id}", points=10)
    group = NotificationGroup(name=f"Group {user.id}")
    label = CustomLabel(name=f"Label {user.id}")
    survey = Survey(title=f"Survey {user.id}", created_by_id=user.id)
    rule = AutoAcceptRule(name=f"Rule {user.id}", created_by_id=user.id)
    db.session.add_all([achievement, group, label, survey, rule])
    db.session.flush()

    signup = Signup(user_id=user.id, shift_id=shift.id)
    booking = GroupBooking(shift_id=shift.id, leader_id=user.id, name="Crew")
    db.session.add_all([signup, booking])
    db.session.flush()

    db.session.add_all(
        [
            UserAchievement(user_id=user.id, achievement_id=achievement.id),
            FriendRequest(from_user_id=user.id, to_email="someone@example.com"),
            RegularVolunteer(user_id=user.id, shift_type_id=shift_type.id),
            NotificationGroupMember(user_id=user.id, group_id=group.id),
            UserCustomLabel(user_id=user.id, label_id=label.id),
            SurveyAssignment(user_id=user.id, survey_id=survey.id),
            GroupInvitation(group_booking_id=booking.id, email="guest@example.com", invited_by_id=user.id),
            Notification(user_id=user.id, title="Hello"),
            AutoApproval(signup_id=signup.id, rule_id=rule.id, overridden_by_id=user.id),
            AdminNote(volunteer_id=user.id, created_by_id=other.id, content="About the user"),
            AdminNote(volunteer_id=other.id, created_by_id=user.id, content="Written by the user"),
            Resource(title="Guide", url="https://example.com/guide", uploaded_by_id=user.id),
            ShiftTemplate(name="Morning", shift_type_id=shift_type.id, created_by_id=user.id),
            Passkey(user_id=user.id, credential_id=f"cred-{user.id}", public_key=b"key"),
            RestaurantManager(user_id=user.id, locations="Downtown"),
        ]
    )
    _friends(user.id, other.id)
    db.session.commit()


class TestMergeExecution:
    """Successful merges"""

    def test_transfers_signups_and_deletes_source(self, target_user, source_user, admin_user, make_shift):
        shift_a, shift_b = make_shift(), make_shift()
        _signup(source_user, shift_a)
        _signup(source_user, shift_b)
        db.session.commit()
        target_id, source_id = target_user.id, source_user.id

        result = UserMergeService().execute(target_id, source_id, admin_user.id)

        assert result.success is True
        assert result.stats["signups"] == TransferCount(transferred=2, skipped=0)
        assert result.deleted_source_email == "source@example.com"
        assert result.target.id == target_id
        assert not _user_exists(source_id)
        assert _count(Signup, Signup.user_id == target_id) == 2

    def test_target_keeps_its_rows_and_gains_the_source_rows(
        self, target_user, source_user, admin_user, make_shift
    ):
        for _ in range(3):
            _signup(target_user, make_shift())
        for _ in range(2):
            _signup(source_user, make_shift())
        db.session.commit()
        target_id, source_id = target_user.id, source_user.id

        result = UserMergeService().execute(target_id, source_id, admin_user.id)

        assert result.stats["signups"] == TransferCount(transferred=2, skipped=0)
        assert _count(Signup, Signup.user_id == target_id) == 5
        assert _count(Signup) == 5

    def test_duplicate_signup_is_dropped(self, target_user, source_user, admin_user, make_shift):
        shared, only_source = make_shift(), make_shift()
        _signup(target_user, shared)
        _signup(source_user, shared)
        _signup(source_user, only_source)
        db.session.commit()
        target_id, source_id = target_user.id, source_user.id

        result = UserMergeService().execute(target_id, source_id, admin_user.id)

        assert result.stats["signups"] == TransferCount(transferred=1, skipped=1)
        shift_ids = db.session.scalars(select(Signup.shift_id).where(Signup.user_id == target_id)).all()
        assert sorted(shift_ids) == sorted([shared.id, only_source.id])

    def test_friendship_between_merged_accounts_is_removed(self, target_user, source_user, admin_user, make_user):
        friend = make_user(email="friend@example.com")
        target_id, source_id, friend_id = target_user.id, source_user.id, friend.id
        _friends(source_id, target_id)
        _friends(source_id, friend_id)
        db.session.commit()

        result = UserMergeService().execute(target_id, source_id, admin_user.id)

        assert result.stats["friendships"] == TransferCount(transferred=1, skipped=1)
        assert _friend_pairs() == {(target_id, friend_id), (friend_id, target_id)}
        assert _count(Friendship, Friendship.user_id == Friendship.friend_id) == 0

    def test_shared_friend_is_not_duplicated(self, target_user, source_user, admin_user, make_user):
        friend = make_user(email="friend@example.com")
        target_id, source_id, friend_id = target_user.id, source_user.id, friend.id
        _friends(target_id, friend_id)
        _friends(source_id, friend_id, initiated_by_id=friend_id)
        db.session.commit()

        result = UserMergeService().execute(target_id, source_id, admin_user.id)

        assert result.stats["friendships"] == TransferCount(transferred=0, skipped=1)
        assert _friend_pairs() == {(target_id, friend_id), (friend_id, target_id)}

    def test_friendship_initiator_is_reattributed(self, target_user, source_user, admin_user, make_user):
        a = make_user(email="a@example.com")
        b = make_user(email="b@example.com")
        source_id, target_id = source_user.id, target_user.id
        # Source introduced two other people
        _friends(a.id, b.id, initiated_by_id=source_id)
        db.session.commit()

        UserMergeService().execute(target_id, source_id, admin_user.id)

        initiators = set(db.session.scalars(select(Friendship.initiated_by_id)))
        assert initiators == {target_id}

    def test_target_restaurant_manager_wins(self, target_user, source_user, admin_user):
        target_id, source_id = target_user.id, source_user.id
        db.session.add_all(
            [
                RestaurantManager(user_id=target_id, locations="Downtown"),
                RestaurantManager(user_id=source_id, locations="Uptown"),
            ]
        )
        db.session.commit()

        result = UserMergeService().execute(target_id, source_id, admin_user.id)

        assert result.stats["restaurant_manager"] == SingletonOutcome(kept=True)
        manager = db.session.scalars(select(RestaurantManager)).one()
        assert manager.user_id == target_id
        assert manager.get_locations() == ["Downtown"]

    def test_source_restaurant_manager_transfers(self, target_user, source_user, admin_user):
        target_id, source_id = target_user.id, source_user.id
        db.session.add(RestaurantManager(user_id=source_id, locations="Uptown"))
        db.session.commit()

        result = UserMergeService().execute(target_id, source_id, admin_user.id)

        assert result.stats["restaurant_manager"] == SingletonOutcome(transferred=True)
        assert _count(RestaurantManager, RestaurantManager.user_id == target_id) == 1

    def test_target_fields_are_untouched(self, target_user, source_user, admin_user):
        target_id, source_id = target_user.id, source_user.id

        UserMergeService().execute(target_id, source_id, admin_user.id)

        target = db.session.get(User, target_id)
        assert target.email == "target@example.com"
        assert target.name == "Target Person"
        assert target.first_name == "Target"

    def test_audit_note_is_written_to_target(self, target_user, source_user, admin_user, make_shift):
        shared, only_source = make_shift(), make_shift()
        _signup(target_user, shared)
        _signup(source_user, shared)
        _signup(source_user, only_source)
        db.session.add(Notification(user_id=source_user.id, title="Welcome"))
        db.session.commit()
        target_id, source_id, admin_id = target_user.id, source_user.id, admin_user.id

        result = UserMergeService().execute(target_id, source_id, admin_id)

        note = db.session.get(AdminNote, result.audit_note_id)
        assert note.volunteer_id == target_id
        assert note.created_by_id == admin_id
        assert note.content.startswith(f"Account merged from source@example.com (ID: {source_id}) on ")
        assert "- Signups: 1 transferred (1 duplicates skipped)" in note.content
        assert "- Notifications: 1" in note.content
        assert _count(AdminNote, AdminNote.volunteer_id == target_id) == 1

    def test_no_row_references_source_after_merge(
        self, target_user, source_user, admin_user, make_shift, shift_type
    ):
        target_id, source_id = target_user.id, source_user.id
        _seed_every_kind(source_user, target_user, make_shift(), shift_type)

        UserMergeService().execute(target_id, source_id, admin_user.id)

        for relation in MERGE_RELATIONS:
            for attr in getattr(relation, "owner_attrs", None) or (relation.owner_attr,):
                column = getattr(relation.model, attr)
                assert _count(relation.model, column == source_id) == 0, f"{relation.kind}.{attr}"
        assert _count(Friendship, Friendship.friend_id == source_id) == 0
        assert _count(Friendship, Friendship.initiated_by_id == source_id) == 0
        assert not _user_exists(source_id)

    def test_merging_two_full_accounts_keeps_uniqueness(
        self, target_user, source_user, admin_user, make_shift, shift_type
    ):
        shift = make_shift()
        target_id, source_id = target_user.id, source_user.id
        _seed_every_kind(target_user, admin_user, shift, shift_type)
        _seed_every_kind(source_user, admin_user, shift, shift_type)

        result = UserMergeService().execute(target_id, source_id, admin_user.id)

        assert result.stats["signups"] == TransferCount(transferred=0, skipped=1)
        assert result.stats["group_bookings"] == TransferCount(transferred=0, skipped=1)
        assert result.stats["regular_volunteers"] == TransferCount(transferred=0, skipped=1)
        assert result.stats["friend_requests"] == TransferCount(transferred=0, skipped=1)
        assert result.stats["achievements"] == TransferCount(transferred=1, skipped=0)
        assert result.stats["restaurant_manager"] == SingletonOutcome(kept=True)
        assert _count(Signup, Signup.user_id == target_id) == 1
        assert _count(RestaurantManager) == 1
        assert _count(Passkey, Passkey.user_id == target_id) == 2

    def test_preview_matches_execution(self, target_user, source_user, admin_user, make_shift):
        shared, only_source = make_shift(), make_shift()
        _signup(target_user, shared)
        _signup(source_user, shared)
        _signup(source_user, only_source)
        db.session.commit()
        target_id, source_id = target_user.id, source_user.id

        service = UserMergeService()
        preview = service.preview(target_id, source_id)
        result = service.execute(target_id, source_id, admin_user.id)

        assert preview["signups"].to_transfer == result.stats["signups"].transferred
        assert preview["signups"].to_skip == result.stats["signups"].skipped

    def test_result_to_dict(self, target_user, source_user, admin_user):
        target_id, source_id = target_user.id, source_user.id

        payload = UserMergeService().execute(target_id, source_id, admin_user.id).to_dict()

        assert payload["success"] is True
        assert payload["target_user"] == {"id": target_id, "email": "target@example.com", "name": "Target Person"}
        assert payload["deleted_source_email"] == "source@example.com"
        assert payload["stats"]["signups"] == {"transferred": 0, "skipped": 0}
        assert payload["stats"]["restaurant_manager"] == {"transferred": False, "kept": False}


class TestMergeValidation:
    """Pre-flight and in-transaction checks"""

    def test_same_account_is_rejected(self, target_user, admin_user, make_shift):
        _signup(target_user, make_shift())
        db.session.commit()
        target_id = target_user.id

        with pytest.raises(SameAccountError) as exc_info:
            UserMergeService().execute(target_id, target_id, admin_user.id)

        assert exc_info.value.code == MergeErrorCode.SAME_USER
        assert _user_exists(target_id)
        assert _count(Signup, Signup.user_id == target_id) == 1
        assert _count(AdminNote) == 0

    def test_missing_target(self, source_user, admin_user):
        with pytest.raises(TargetNotFoundError) as exc_info:
            UserMergeService().execute(9999, source_user.id, admin_user.id)
        assert exc_info.value.message == "Target user with ID 9999 not found"

    def test_missing_source(self, target_user, admin_user):
        with pytest.raises(SourceNotFoundError) as exc_info:
            UserMergeService().execute(target_user.id, 9999, admin_user.id)
        assert exc_info.value.code == MergeErrorCode.SOURCE_NOT_FOUND

    def test_missing_admin(self, target_user, source_user):
        with pytest.raises(AdminNotFoundError):
            UserMergeService().execute(target_user.id, source_user.id, 9999)

    def test_non_admin_is_rejected(self, target_user, source_user, make_user):
        volunteer = make_user(email="volunteer@example.com")
        source_id = source_user.id

        with pytest.raises(AdminNotAuthorizedError) as exc_info:
            UserMergeService().execute(target_user.id, source_id, volunteer.id)

        assert exc_info.value.code == MergeErrorCode.ADMIN_NOT_AUTHORIZED
        assert _user_exists(source_id)

    def test_admin_cannot_merge_away_own_account(self, target_user, admin_user):
        admin_id = admin_user.id

        with pytest.raises(AdminNotAuthorizedError):
            UserMergeService().execute(target_user.id, admin_id, admin_id)

        assert _user_exists(admin_id)

    def test_source_deleted_after_preflight(self, target_user, source_user, admin_user, make_shift):
        shift = make_shift()
        _signup(target_user, shift)
        db.session.commit()
        target_id, source_id = target_user.id, source_user.id

        class RacingMergeService(UserMergeService):
            def _release_preflight_snapshot(self):
                super()._release_preflight_snapshot()
                # Another admin removes the source between pre-flight and the merge transaction
                self.session.execute(delete(User).where(User.id == source_id))
                self.session.commit()

        with pytest.raises(AccountDeletedDuringMergeError) as exc_info:
            RacingMergeService().execute(target_id, source_id, admin_user.id)

        assert exc_info.value.code == MergeErrorCode.USER_DELETED_DURING_MERGE
        assert _user_exists(target_id)
        assert _count(Signup, Signup.user_id == target_id) == 1
        assert _count(AdminNote) == 0


class TestMergeAtomicity:
    """Failures inside the transaction leave no trace"""

    def test_failure_after_strategies_rolls_everything_back(
        self, target_user, source_user, admin_user, make_shift
    ):
        shift_a, shift_b = make_shift(), make_shift()
        _signup(source_user, shift_a)
        _signup(source_user, shift_b)
        db.session.add(RestaurantManager(user_id=source_user.id))
        db.session.commit()
        target_id, source_id = target_user.id, source_user.id

        with patch("flask_app.user_merge.service.compose_audit_note", side_effect=RuntimeError("disk full")):
            with pytest.raises(TransactionFailedError) as exc_info:
                UserMergeService().execute(target_id, source_id, admin_user.id)

        error = exc_info.value
        assert error.reason == TransactionFailedError.UNKNOWN
        assert error.message == "Merge transaction failed: disk full"
        assert isinstance(error.__cause__, RuntimeError)
        assert _user_exists(source_id)
        assert _count(Signup, Signup.user_id == source_id) == 2
        assert _count(Signup, Signup.user_id == target_id) == 0
        assert _count(RestaurantManager, RestaurantManager.user_id == source_id) == 1
        assert _count(AdminNote) == 0

    def test_unhandled_reference_is_reported_as_foreign_key_failure(
        self, target_user, source_user, admin_user, make_shift
    ):
        _signup(source_user, make_shift())
        db.session.commit()
        target_id, source_id = target_user.id, source_user.id
        without_signups = [relation for relation in MERGE_RELATIONS if relation.kind != "signups"]

        with pytest.raises(TransactionFailedError) as exc_info:
            UserMergeService(relations=without_signups).execute(target_id, source_id, admin_user.id)

        assert exc_info.value.reason == TransactionFailedError.FOREIGN_KEY
        assert exc_info.value.code == MergeErrorCode.TRANSACTION_FAILED
        assert _user_exists(source_id)
        assert _count(Signup, Signup.user_id == source_id) == 1

    def test_deadline_exceeded_is_reported_as_timeout(self, target_user, source_user, admin_user, make_shift):
        _signup(source_user, make_shift())
        db.session.commit()
        target_id, source_id = target_user.id, source_user.id
        ticks = iter(range(0, 10_000, 50))

        service = UserMergeService(timeout_seconds=60, clock=lambda: next(ticks))
        with pytest.raises(TransactionFailedError) as exc_info:
            service.execute(target_id, source_id, admin_user.id)

        assert exc_info.value.reason == TransactionFailedError.TIMEOUT
        assert _user_exists(source_id)
        assert _count(Signup, Signup.user_id == source_id) == 1

    def test_metrics_record_outcome(self, target_user, source_user, admin_user, mock_merge_metrics):
        UserMergeService().execute(target_user.id, source_user.id, admin_user.id)

        mock_merge_metrics.record_merge.assert_called_once()
        assert mock_merge_metrics.record_merge.call_args.args == ("succeeded",)
        mock_merge_metrics.record_kind_outcomes.assert_called_once()

    def test_metrics_record_error_code(self, target_user, admin_user, mock_merge_metrics):
        with pytest.raises(SameAccountError):
            UserMergeService().execute(target_user.id, target_user.id, admin_user.id)

        assert mock_merge_metrics.record_merge.call_args.args == ("SAME_USER",)
        mock_merge_metrics.record_kind_outcomes.assert_not_called()

    def test_metrics_record_unexpected_preflight_failure(
        self, target_user, source_user, admin_user, mock_merge_metrics
    ):
        outage = OperationalError("SELECT users", {}, Exception("server closed the connection unexpectedly"))

        with patch.object(UserMergeService, "_preflight", side_effect=outage):
            with pytest.raises(OperationalError):
                UserMergeService().execute(target_user.id, source_user.id, admin_user.id)

        assert mock_merge_metrics.record_merge.call_args.args == ("error",)
        mock_merge_metrics.record_kind_outcomes.assert_not_called()


class TestCallerSessionState:
    """The executor never discards work the caller has not committed"""

    def test_pending_object_is_rejected_and_kept(self, target_user, source_user, admin_user, make_user):
        other_id = make_user(email="other@example.com").id
        target_id, source_id, admin_id = target_user.id, source_user.id, admin_user.id
        db.session.add(Notification(user_id=other_id, title="Queued by caller"))

        with pytest.raises(PendingChangesError) as exc_info:
            UserMergeService().execute(target_id, source_id, admin_id)

        assert exc_info.value.code == MergeErrorCode.SESSION_HAS_PENDING_CHANGES
        db.session.commit()
        assert _count(Notification, Notification.user_id == other_id) == 1
        assert _user_exists(source_id)

    def test_flushed_object_is_rejected_and_kept(self, target_user, source_user, admin_user, make_user):
        other_id = make_user(email="other@example.com").id
        target_id, source_id, admin_id = target_user.id, source_user.id, admin_user.id
        db.session.add(Notification(user_id=other_id, title="Flushed by caller"))
        db.session.flush()

        with pytest.raises(PendingChangesError):
            UserMergeService().execute(target_id, source_id, admin_id)

        db.session.commit()
        assert _count(Notification, Notification.user_id == other_id) == 1

    def test_uncommitted_bulk_update_is_rejected_and_kept(self, target_user, source_user, admin_user, make_user):
        other_id = make_user(email="other@example.com").id
        target_id, source_id, admin_id = target_user.id, source_user.id, admin_user.id
        db.session.execute(update(User).where(User.id == other_id).values(name="Renamed"))

        with pytest.raises(PendingChangesError):
            UserMergeService().execute(target_id, source_id, admin_id)

        db.session.commit()
        assert db.session.scalar(select(User.name).where(User.id == other_id)) == "Renamed"

    def test_modified_attribute_is_rejected(self, target_user, source_user, admin_user):
        target_id, source_id, admin_id = target_user.id, source_user.id, admin_user.id
        target_user.name = "Edited by caller"

        with pytest.raises(PendingChangesError):
            UserMergeService().execute(target_id, source_id, admin_id)

        db.session.commit()
        assert db.session.scalar(select(User.name).where(User.id == target_id)) == "Edited by caller"
        assert _user_exists(source_id)

    def test_merge_runs_once_caller_work_is_committed(self, target_user, source_user, admin_user, make_user):
        other_id = make_user(email="other@example.com").id
        target_id, source_id, admin_id = target_user.id, source_user.id, admin_user.id
        db.session.add(Notification(user_id=other_id, title="Committed first"))
        db.session.commit()

        UserMergeService().execute(target_id, source_id, admin_id)

        assert not _user_exists(source_id)
        assert _count(Notification, Notification.user_id == other_id) == 1
