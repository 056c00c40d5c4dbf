from marshmallow import Schema, fields


class ActivityLogOutSchema(Schema):
    id = fields.String()
    user_id = fields.String()
    action = fields.Function(lambda obj: obj.action.value)
    success = fields.Boolean()
    details = fields.Raw(allow_none=True)
    ip_address = fields.String(allow_none=True)
    user_agent = fields.String(allow_none=True)
    timestamp = fields.DateTime()
