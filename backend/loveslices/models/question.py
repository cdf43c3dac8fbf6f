"""
Prompts answered by both partners, their responses, and conversation starters.
"""
from tortoise import fields, models

class Question(models.Model):
    id = fields.IntField(pk=True)
    content = fields.TextField()
    theme = fields.CharField(max_length=64, index=True)  # e.g. "Trust", "Intimacy", "Conflict"

    class Meta:
        table = "questions"

class Response(models.Model):
    """
    One user's answer to a question.
    (user, question) is unique: a user answers a prompt at most once, and a
    racing double submit loses on the constraint rather than on a pre-check.
    """
    id = fields.IntField(pk=True)
    user = fields.ForeignKeyField("models.User", related_name="responses", on_delete=fields.CASCADE)
    question = fields.ForeignKeyField("models.Question", related_name="responses", on_delete=fields.CASCADE)
    content = fields.TextField()
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "responses"
        unique_together = (("user", "question"),)

class ConversationStarter(models.Model):
    id = fields.IntField(pk=True)
    content = fields.TextField()
    theme = fields.CharField(max_length=64, index=True)
    loveslice = fields.ForeignKeyField(
        "models.Loveslice", related_name="starters", null=True, on_delete=fields.SET_NULL
    )  # Set when the starter was generated from a written loveslice
    used = fields.BooleanField(default=False)
    marked_as_meaningful = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "conversation_starters"

class ActiveQuestion(models.Model):
    """
    A question handed to one user.

    The user's current question is their newest assignment that is neither
    answered nor skipped. Past rows are the history used to prefer questions
    the user has not seen yet.
    """
    id = fields.IntField(pk=True)
    user = fields.ForeignKeyField("models.User", related_name="active_questions", on_delete=fields.CASCADE)
    question = fields.ForeignKeyField("models.Question", related_name=False, on_delete=fields.CASCADE)
    assigned_at = fields.DatetimeField(auto_now_add=True)
    is_answered = fields.BooleanField(default=False)
    is_skipped = fields.BooleanField(default=False)
    skip_note = fields.TextField(null=True)  # Optional reason, kept for the user
    skipped_at = fields.DatetimeField(null=True)

    class Meta:
        table = "active_questions"
