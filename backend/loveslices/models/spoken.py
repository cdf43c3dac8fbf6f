"""
Spoken loveslice: created at most once per conversation, when it closes.
"""
from tortoise import fields, models
from .conversation import Outcome

class SpokenLoveslice(models.Model):
    id = fields.IntField(pk=True)
    conversation = fields.OneToOneField(
        "models.Conversation", related_name="spoken_loveslice", on_delete=fields.CASCADE
    )  # One-to-one: the unique index backs the at-most-once rule
    user1 = fields.ForeignKeyField("models.User", related_name=False, on_delete=fields.CASCADE)
    user2 = fields.ForeignKeyField("models.User", related_name=False, on_delete=fields.CASCADE)
    outcome = fields.CharEnumField(Outcome, max_length=24)
    theme = fields.CharField(max_length=64)
    duration_seconds = fields.IntField()
    continued_offline = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "spoken_loveslices"
