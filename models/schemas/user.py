from flask import current_app, has_app_context
from marshmallow import EXCLUDE, Schema, fields, pre_load, validates, ValidationError, validate


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


def _min_password_length() -> int:
    if has_app_context():
        return current_app.config.get("PASSWORD_MIN_LENGTH", 6)
    return 6


def _check_password(value):
    minimum = _min_password_length()
    if len(value) < minimum:
        raise ValidationError(f"Password must be at least {minimum} characters long.")


class UserCreateSchema(Schema):
    class Meta:
        # self-registration never sets a role; extra keys such as "role" are dropped
        unknown = EXCLUDE

    name = fields.String(required=True, validate=validate.Length(min=1, max=255))
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = {**data, "email": _norm_email(data["email"])}
        return data

    @validates("password")
    def validate_password(self, value, **kwargs):
        _check_password(value)


class UserLoginSchema(Schema):
    email = fields.String(required=True)
    password = fields.String(required=True, load_only=True)


class UserUpdateSchema(Schema):
    name = fields.String(validate=validate.Length(min=1, max=255))
    email = fields.Email()
    # Accepted from admins only; any other value is normalised to "user"
    role = fields.String()

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = {**data, "email": _norm_email(data["email"])}
        return data


class PasswordChangeSchema(Schema):
    current_password = fields.String(load_default=None)
    new_password = fields.String(required=True)

    @validates("new_password")
    def validate_new_password(self, value, **kwargs):
        _check_password(value)


class UserOutSchema(Schema):
    """Public view of a user: never carries the password hash or tokens."""
    id = fields.String()
    name = fields.String()
    email = fields.String()
    role = fields.String()
    external_linked = fields.Method("get_external_linked")
    created_at = fields.DateTime()
    updated_at = fields.DateTime()

    def get_external_linked(self, obj):
        return bool(obj.external_id)
