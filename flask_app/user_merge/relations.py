"""
Registry of every record kind that references an account, in merge order.

Order matters only in that all rows pointing at the source must be handled
before the source account itself is deleted; kinds run grouped by shape.
"""

from __future__ import annotations

from flask_app.models import (
    AdminNote,
    AutoAcceptRule,
    AutoApproval,
    Friendship,
    FriendRequest,
    GroupBooking,
    GroupInvitation,
    Notification,
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
)

from .strategies import (
    BulkReattribute,
    MergeStrategy,
    SingletonPrecedence,
    SymmetricRelationship,
    UniquePairDedup,
)

UNIQUE_PAIR_RELATIONS = (
    UniquePairDedup("signups", "Signups", Signup, "user_id", "shift_id"),
    UniquePairDedup("achievements", "Achievements", UserAchievement, "user_id", "achievement_id"),
    UniquePairDedup("group_bookings", "Group Bookings", GroupBooking, "leader_id", "shift_id"),
    # Requests addressed to either merged account would become requests to oneself.
    UniquePairDedup(
        "friend_requests", "Friend Requests", FriendRequest, "from_user_id", "to_email", self_key=User.email
    ),
    UniquePairDedup("regular_volunteers", "Regular Volunteers", RegularVolunteer, "user_id", "shift_type_id"),
    UniquePairDedup(
        "notification_group_members",
        "Notification Groups",
        NotificationGroupMember,
        "user_id",
        "group_id",
    ),
    UniquePairDedup("custom_labels", "Custom Labels", UserCustomLabel, "user_id", "label_id"),
    UniquePairDedup("survey_assignments", "Survey Assignments", SurveyAssignment, "user_id", "survey_id"),
)

ATTRIBUTION_RELATIONS = (
    BulkReattribute("group_invitations", "Group Invitations", GroupInvitation, ("invited_by_id",)),
    BulkReattribute("notifications", "Notifications", Notification, ("user_id",)),
    BulkReattribute("auto_accept_rules", "Auto-Accept Rules", AutoAcceptRule, ("created_by_id",)),
    BulkReattribute("auto_approvals", "Auto-Approval Overrides", AutoApproval, ("overridden_by_id",)),
    # Notes about the source and notes written by the source.
    BulkReattribute("admin_notes", "Admin Notes", AdminNote, ("volunteer_id", "created_by_id")),
    BulkReattribute("resources", "Resources", Resource, ("uploaded_by_id",)),
    BulkReattribute("shift_templates", "Shift Templates", ShiftTemplate, ("created_by_id",)),
    BulkReattribute("surveys", "Surveys", Survey, ("created_by_id",)),
    BulkReattribute("passkeys", "Passkeys", Passkey, ("user_id",)),
)

SYMMETRIC_RELATIONS = (
    SymmetricRelationship("friendships", "Friendships", Friendship, "user_id", "friend_id", "initiated_by_id"),
)

SINGLETON_RELATIONS = (
    SingletonPrecedence("restaurant_manager", "Restaurant Manager", RestaurantManager, "user_id"),
)

MERGE_RELATIONS: tuple[MergeStrategy, ...] = (
    UNIQUE_PAIR_RELATIONS + ATTRIBUTION_RELATIONS + SYMMETRIC_RELATIONS + SINGLETON_RELATIONS
)


def get_relation(kind: str) -> MergeStrategy:
    for relation in MERGE_RELATIONS:
        if relation.kind == kind:
            return relation
    raise KeyError(kind)
