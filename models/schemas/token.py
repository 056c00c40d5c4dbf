from marshmallow import Schema, fields, validate


class RefreshRequestSchema(Schema):
    refresh_token = fields.String(required=True, validate=validate.Length(min=1))


class LogoutRequestSchema(Schema):
    # absent means "log out from all devices"
    refresh_token = fields.String(load_default=None)


class CleanupRequestSchema(Schema):
    scope = fields.String(load_default="self", validate=validate.OneOf(["self", "user", "all"]))
    user_id = fields.String(load_default=None)
    max_age_days = fields.Integer(load_default=None, validate=validate.Range(min=1))


class ClearTokensRequestSchema(Schema):
    user_id = fields.String(load_default=None)


class SessionOutSchema(Schema):
    id = fields.String()
    created_at = fields.DateTime()
    token_preview = fields.String()
