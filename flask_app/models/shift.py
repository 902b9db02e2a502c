# flask_app/models/shift.py
"""
Shift scheduling models: shift types, shifts, signups, group bookings,
regular rosters, templates and the auto-accept machinery.
"""

from sqlalchemy import Enum, Index

from .base import BaseModel, db
from .enums import RegularFrequency, SignupStatus


class ShiftType(BaseModel):
    """Category of work (kitchen, front of house, delivery...)"""

    __tablename__ = "shift_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)

    def __repr__(self):
        return f"<ShiftType {self.name}>"


class Shift(BaseModel):
    """A single scheduled shift at a location"""

    __tablename__ = "shifts"

    id = db.Column(db.Integer, primary_key=True)
    shift_type_id = db.Column(db.Integer, db.ForeignKey("shift_types.id"), nullable=False)
    location = db.Column(db.String(200), nullable=True, index=True)
    start = db.Column(db.DateTime, nullable=False, index=True)
    end = db.Column(db.DateTime, nullable=False)
    capacity = db.Column(db.Integer, default=1, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    shift_type = db.relationship("ShiftType", foreign_keys=[shift_type_id])

    def __repr__(self):
        return f"<Shift {self.id} at {self.location}>"


class Signup(BaseModel):
    """A volunteer's signup for a shift; one per (user, shift)"""

    __tablename__ = "signups"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False)
    status = db.Column(
        Enum(SignupStatus, name="signup_status_enum"),
        default=SignupStatus.PENDING,
        nullable=False,
        index=True,
    )
    canceled_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])
    shift = db.relationship("Shift", foreign_keys=[shift_id])

    __table_args__ = (
        db.UniqueConstraint("user_id", "shift_id", name="_signup_user_shift_uc"),
        Index("idx_signup_shift_status", "shift_id", "status"),
    )

    def __repr__(self):
        return f"<Signup user={self.user_id} shift={self.shift_id} ({self.status.value})>"


class GroupBooking(BaseModel):
    """A group of volunteers booked onto a shift by a leader"""

    __tablename__ = "group_bookings"

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False)
    leader_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    size = db.Column(db.Integer, default=1, nullable=False)

    leader = db.relationship("User", foreign_keys=[leader_id])
    shift = db.relationship("Shift", foreign_keys=[shift_id])

    # A leader may only lead one group per shift
    __table_args__ = (db.UniqueConstraint("shift_id", "leader_id", name="_group_booking_shift_leader_uc"),)

    def __repr__(self):
        return f"<GroupBooking {self.name} shift={self.shift_id}>"


class GroupInvitation(BaseModel):
    """Invitation to join a group booking"""

    __tablename__ = "group_invitations"

    id = db.Column(db.Integer, primary_key=True)
    group_booking_id = db.Column(
        db.Integer, db.ForeignKey("group_bookings.id", ondelete="CASCADE"), nullable=False
    )
    email = db.Column(db.String(255), nullable=False)
    invited_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    accepted_at = db.Column(db.DateTime, nullable=True)

    group_booking = db.relationship("GroupBooking", foreign_keys=[group_booking_id])

    def __repr__(self):
        return f"<GroupInvitation {self.email} booking={self.group_booking_id}>"


class RegularVolunteer(BaseModel):
    """Standing roster entry: a volunteer who regularly works a shift type"""

    __tablename__ = "regular_volunteers"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    shift_type_id = db.Column(db.Integer, db.ForeignKey("shift_types.id"), nullable=False)
    location = db.Column(db.String(200), nullable=True)
    frequency = db.Column(
        Enum(RegularFrequency, name="regular_frequency_enum"),
        default=RegularFrequency.WEEKLY,
        nullable=False,
    )
    is_paused = db.Column(db.Boolean, default=False, nullable=False)

    shift_type = db.relationship("ShiftType", foreign_keys=[shift_type_id])

    __table_args__ = (db.UniqueConstraint("user_id", "shift_type_id", name="_regular_user_shift_type_uc"),)

    def __repr__(self):
        return f"<RegularVolunteer user={self.user_id} shift_type={self.shift_type_id}>"


class ShiftTemplate(BaseModel):
    """Reusable blueprint for creating shifts"""

    __tablename__ = "shift_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    shift_type_id = db.Column(db.Integer, db.ForeignKey("shift_types.id"), nullable=False)
    location = db.Column(db.String(200), nullable=True)
    capacity = db.Column(db.Integer, default=1, nullable=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    def __repr__(self):
        return f"<ShiftTemplate {self.name}>"


class AutoAcceptRule(BaseModel):
    """Rule that confirms matching signups without admin review"""

    __tablename__ = "auto_accept_rules"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    shift_type_id = db.Column(db.Integer, db.ForeignKey("shift_types.id"), nullable=True)
    min_completed_shifts = db.Column(db.Integer, default=0, nullable=False)
    is_enabled = db.Column(db.Boolean, default=True, nullable=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    def __repr__(self):
        return f"<AutoAcceptRule {self.name}>"


class AutoApproval(BaseModel):
    """Record of a signup confirmed by an auto-accept rule"""

    __tablename__ = "auto_approvals"

    id = db.Column(db.Integer, primary_key=True)
    signup_id = db.Column(db.Integer, db.ForeignKey("signups.id", ondelete="CASCADE"), nullable=False)
    rule_id = db.Column(db.Integer, db.ForeignKey("auto_accept_rules.id"), nullable=False)
    overridden_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    overridden_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f"<AutoApproval signup={self.signup_id} rule={self.rule_id}>"
