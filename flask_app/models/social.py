# flask_app/models/social.py
"""
Social and engagement models: friendships, friend requests, achievements,
notifications and notification groups.
"""

from sqlalchemy import CheckConstraint, Enum, Index

from .base import BaseModel, db
from .enums import FriendRequestStatus


class Friendship(BaseModel):
    """
    One direction of a friendship. Each friendship is stored as two rows,
    (user, friend) and (friend, user).
    """

    __tablename__ = "friendships"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    friend_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    initiated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    user = db.relationship("User", foreign_keys=[user_id])
    friend = db.relationship("User", foreign_keys=[friend_id])

    # Self-friendship rows are rejected at the application layer only; merges
    # of legacy data may still encounter them.
    __table_args__ = (db.UniqueConstraint("user_id", "friend_id", name="_friendship_user_friend_uc"),)

    def __repr__(self):
        return f"<Friendship {self.user_id} -> {self.friend_id}>"


class FriendRequest(BaseModel):
    """Pending invitation to become friends, addressed by email"""

    __tablename__ = "friend_requests"

    id = db.Column(db.Integer, primary_key=True)
    from_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    to_email = db.Column(db.String(255), nullable=False, index=True)
    status = db.Column(
        Enum(FriendRequestStatus, name="friend_request_status_enum"),
        default=FriendRequestStatus.PENDING,
        nullable=False,
    )
    message = db.Column(db.Text, nullable=True)

    __table_args__ = (db.UniqueConstraint("from_user_id", "to_email", name="_friend_request_from_to_uc"),)

    def __repr__(self):
        return f"<FriendRequest {self.from_user_id} -> {self.to_email}>"


class Achievement(BaseModel):
    """Badge that volunteers can unlock"""

    __tablename__ = "achievements"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    points = db.Column(db.Integer, default=0, nullable=False)

    __table_args__ = (CheckConstraint("points >= 0", name="check_achievement_points_positive"),)

    def __repr__(self):
        return f"<Achievement {self.name}>"


class UserAchievement(BaseModel):
    """Achievement unlocked by a volunteer"""

    __tablename__ = "user_achievements"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    achievement_id = db.Column(db.Integer, db.ForeignKey("achievements.id"), nullable=False)
    unlocked_at = db.Column(db.DateTime, nullable=True)

    achievement = db.relationship("Achievement", foreign_keys=[achievement_id])

    __table_args__ = (db.UniqueConstraint("user_id", "achievement_id", name="_user_achievement_uc"),)

    def __repr__(self):
        return f"<UserAchievement user={self.user_id} achievement={self.achievement_id}>"


class Notification(BaseModel):
    """In-app notification delivered to an account"""

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    body = db.Column(db.Text, nullable=True)
    is_read = db.Column(db.Boolean, default=False, nullable=False)

    __table_args__ = (Index("idx_notification_user_read", "user_id", "is_read"),)

    def __repr__(self):
        return f"<Notification user={self.user_id} {self.title}>"


class NotificationGroup(BaseModel):
    """Named audience for shortage and broadcast notifications"""

    __tablename__ = "notification_groups"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)

    def __repr__(self):
        return f"<NotificationGroup {self.name}>"


class NotificationGroupMember(BaseModel):
    """Membership of an account in a notification group"""

    __tablename__ = "notification_group_members"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("notification_groups.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    group = db.relationship("NotificationGroup", foreign_keys=[group_id])

    __table_args__ = (db.UniqueConstraint("group_id", "user_id", name="_notification_group_member_uc"),)

    def __repr__(self):
        return f"<NotificationGroupMember group={self.group_id} user={self.user_id}>"
