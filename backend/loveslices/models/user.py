"""
Database model for users.
Represents an account and its (optional) link to a partner. The partner link
is what the pairing engine and conversations use to find "the other person".
"""
import uuid
import secrets
from tortoise import fields, models

def _invite_code() -> str:
    return secrets.token_hex(6)

class User(models.Model):
    """
    User database model.

    Relationships:
    - Optional partner (self-referencing, kept symmetric by the partners router)
    - Has many Responses, Conversations, Loveslices

    Security:
    - Password is stored as a hash (never store plain text passwords)
    - Username must be unique across all users
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)  # Primary key: unique user identifier
    username = fields.CharField(
        max_length=256,
        unique=True,
        index=True
    )  # User login name (must be unique, indexed for fast lookups)
    email = fields.CharField(max_length=256, null=True)  # Optional email address
    display_name = fields.CharField(max_length=128, null=True)  # Shown to the partner in push events
    password_hash = fields.CharField(max_length=255)  # Argon2 hash
    partner = fields.ForeignKeyField(
        "models.User",
        related_name=False,
        null=True,
        on_delete=fields.SET_NULL,
    )  # Current partner (null when the user is on their own)
    invite_code = fields.CharField(max_length=16, unique=True, default=_invite_code)  # Shared to link partners
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        """Tortoise ORM metadata configuration."""
        table = "users"

    @property
    def name(self) -> str:
        return self.display_name or self.username
