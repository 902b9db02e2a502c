# flask_app/models/admin.py
"""
Admin-facing models: notes, custom labels, the resource hub, surveys and
the restaurant manager sub-profile.
"""

from sqlalchemy import Index

from .base import BaseModel, db


class AdminNote(BaseModel):
    """Staff note attached to a volunteer's account"""

    __tablename__ = "admin_notes"

    id = db.Column(db.Integer, primary_key=True)
    volunteer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    is_archived = db.Column(db.Boolean, default=False, nullable=False)

    volunteer = db.relationship("User", foreign_keys=[volunteer_id])
    created_by = db.relationship("User", foreign_keys=[created_by_id])

    __table_args__ = (Index("idx_admin_note_volunteer_created", "volunteer_id", "created_at"),)

    def __repr__(self):
        return f"<AdminNote volunteer={self.volunteer_id} by={self.created_by_id}>"


class CustomLabel(BaseModel):
    """Admin-defined label that can be granted to volunteers"""

    __tablename__ = "custom_labels"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    color = db.Column(db.String(20), nullable=True)

    def __repr__(self):
        return f"<CustomLabel {self.name}>"


class UserCustomLabel(BaseModel):
    """Grant of a custom label to an account"""

    __tablename__ = "user_custom_labels"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    label_id = db.Column(db.Integer, db.ForeignKey("custom_labels.id"), nullable=False)

    label = db.relationship("CustomLabel", foreign_keys=[label_id])

    __table_args__ = (db.UniqueConstraint("user_id", "label_id", name="_user_custom_label_uc"),)

    def __repr__(self):
        return f"<UserCustomLabel user={self.user_id} label={self.label_id}>"


class Resource(BaseModel):
    """File or link in the volunteer resource hub"""

    __tablename__ = "resources"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    url = db.Column(db.String(500), nullable=False)
    category = db.Column(db.String(50), nullable=True, index=True)
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    def __repr__(self):
        return f"<Resource {self.title}>"


class Survey(BaseModel):
    """Questionnaire sent to volunteers"""

    __tablename__ = "surveys"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    def __repr__(self):
        return f"<Survey {self.title}>"


class SurveyAssignment(BaseModel):
    """A survey assigned to one account"""

    __tablename__ = "survey_assignments"

    id = db.Column(db.Integer, primary_key=True)
    survey_id = db.Column(db.Integer, db.ForeignKey("surveys.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)

    survey = db.relationship("Survey", foreign_keys=[survey_id])

    __table_args__ = (db.UniqueConstraint("survey_id", "user_id", name="_survey_assignment_uc"),)

    def __repr__(self):
        return f"<SurveyAssignment survey={self.survey_id} user={self.user_id}>"


class RestaurantManager(BaseModel):
    """Manager sub-profile; an account has at most one"""

    __tablename__ = "restaurant_managers"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False)
    locations = db.Column(db.Text, nullable=True)  # comma-separated location names
    receive_notifications = db.Column(db.Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<RestaurantManager user={self.user_id}>"

    def get_locations(self):
        if not self.locations:
            return []
        return [location.strip() for location in self.locations.split(",") if location.strip()]
