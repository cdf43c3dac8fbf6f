"""
Written loveslice: the artifact created when both partners answered the same
question.
"""
from tortoise import fields, models

def pair_key(a, b) -> str:
    """Order-independent key for a pair of user ids."""
    x, y = sorted((str(a), str(b)))
    return f"{x}:{y}"

class Loveslice(models.Model):
    """
    Written loveslice database model.

    Exactly one row per (question, pair of users). The unique constraint on
    (question, pair_key) is what enforces it when both partners submit at the
    same time; user1/response1 belong to whoever completed the pair.
    """
    id = fields.IntField(pk=True)
    question = fields.ForeignKeyField("models.Question", related_name="loveslices", on_delete=fields.CASCADE)
    user1 = fields.ForeignKeyField("models.User", related_name=False, on_delete=fields.CASCADE)
    user2 = fields.ForeignKeyField("models.User", related_name=False, on_delete=fields.CASCADE)
    response1 = fields.ForeignKeyField("models.Response", related_name=False, on_delete=fields.CASCADE)
    response2 = fields.ForeignKeyField("models.Response", related_name=False, on_delete=fields.CASCADE)
    pair_key = fields.CharField(max_length=80)  # pair_key(user1_id, user2_id)
    private_note = fields.TextField(null=True)
    type = fields.CharField(max_length=16, default="written")
    has_started_conversation = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "loveslices"
        unique_together = (("question", "pair_key"),)

    def has_participant(self, user_id) -> bool:
        return str(user_id) in (str(self.user1_id), str(self.user2_id))
