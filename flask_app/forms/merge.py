# flask_app/forms/merge.py
"""
Form for the admin account merge endpoint
"""

from flask_wtf import FlaskForm
from wtforms import IntegerField, StringField, SubmitField
from wtforms.validators import DataRequired, Email, Length, NumberRange, Optional


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class MergeUsersForm(FlaskForm):
    """Form for merging a source account into a target account"""

    target_id = IntegerField(
        "Target Account ID",
        validators=[
            DataRequired(message="Target user ID is required."),
            NumberRange(min=1, message="Target user ID must be a positive integer."),
        ],
    )
    source_id = IntegerField(
        "Source Account ID",
        validators=[
            DataRequired(message="Source user ID is required."),
            NumberRange(min=1, message="Source user ID must be a positive integer."),
        ],
    )
    # Required at the route level when USER_MERGE_REQUIRE_CONFIRM_EMAIL is on.
    confirm_email = StringField(
        "Confirm Source Email",
        filters=[_strip],
        validators=[
            Optional(),
            Email(message="Please enter a valid email address."),
            Length(max=255, message="Email must be less than 255 characters."),
        ],
        render_kw={"placeholder": "Type the source account's email to confirm"},
    )
    submit = SubmitField("Merge Accounts")

    def confirmation_matches(self, email):
        """Case-insensitive comparison of the typed confirmation with the source email"""
        typed = (self.confirm_email.data or "").strip().lower()
        return bool(typed) and typed == (email or "").strip().lower()
