# flask_app/models/__init__.py
"""
Database models package
"""

from .admin import AdminNote, CustomLabel, Resource, RestaurantManager, Survey, SurveyAssignment, UserCustomLabel
from .base import BaseModel, db
from .enums import FriendRequestStatus, RegularFrequency, SignupStatus, UserRole
from .shift import (
    AutoAcceptRule,
    AutoApproval,
    GroupBooking,
    GroupInvitation,
    RegularVolunteer,
    Shift,
    ShiftTemplate,
    ShiftType,
    Signup,
)
from .social import (
    Achievement,
    Friendship,
    FriendRequest,
    Notification,
    NotificationGroup,
    NotificationGroupMember,
    UserAchievement,
)
from .user import Passkey, User

__all__ = [
    "db",
    "BaseModel",
    "User",
    "Passkey",
    # Enums
    "UserRole",
    "SignupStatus",
    "RegularFrequency",
    "FriendRequestStatus",
    # Shift models
    "ShiftType",
    "Shift",
    "Signup",
    "GroupBooking",
    "GroupInvitation",
    "RegularVolunteer",
    "ShiftTemplate",
    "AutoAcceptRule",
    "AutoApproval",
    # Social models
    "Friendship",
    "FriendRequest",
    "Achievement",
    "UserAchievement",
    "Notification",
    "NotificationGroup",
    "NotificationGroupMember",
    # Admin models
    "AdminNote",
    "CustomLabel",
    "UserCustomLabel",
    "Resource",
    "Survey",
    "SurveyAssignment",
    "RestaurantManager",
]
