from tortoise import fields, models

class JournalEntry(models.Model):
    """
    Denormalized search row for a written or spoken loveslice.
    Written once, in the same transaction as the loveslice it points at.
    """
    id = fields.IntField(pk=True)
    user1 = fields.ForeignKeyField("models.User", related_name=False, on_delete=fields.CASCADE)
    user2 = fields.ForeignKeyField("models.User", related_name=False, on_delete=fields.CASCADE)
    written_loveslice = fields.ForeignKeyField(
        "models.Loveslice", related_name="journal_entries", null=True, on_delete=fields.CASCADE
    )
    spoken_loveslice = fields.ForeignKeyField(
        "models.SpokenLoveslice", related_name="journal_entries", null=True, on_delete=fields.CASCADE
    )
    theme = fields.CharField(max_length=64, index=True)
    searchable_content = fields.TextField()
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "journal_entries"
