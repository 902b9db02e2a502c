# flask_app/models/enums.py
"""
Enums shared by the account and shift models
"""

from enum import Enum


class UserRole(str, Enum):
    """Account roles"""

    VOLUNTEER = "volunteer"
    ADMIN = "admin"


class SignupStatus(str, Enum):
    """Lifecycle of a shift signup"""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"
    CANCELED = "canceled"
    NO_SHOW = "no_show"


class RegularFrequency(str, Enum):
    """How often a regular volunteer is rostered onto a shift type"""

    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    MONTHLY = "monthly"


class FriendRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
