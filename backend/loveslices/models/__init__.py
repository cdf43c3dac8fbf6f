# loveslices/models/__init__.py
"""
Database models module initialization.
Exports all Tortoise ORM models for convenient imports.

Models exported:
- User: account and partner link
- Question, Response, ConversationStarter: prompts and answers
- ActiveQuestion: per-user question assignment (answered / skipped history)
- Loveslice: written loveslice (paired responses)
- Conversation, ConversationMessage: live conversation and its log
- SpokenLoveslice: artifact of a closed conversation
- JournalEntry: search index over both loveslice kinds
"""
from .user import User
from .question import Question, Response, ConversationStarter, ActiveQuestion
from .loveslice import Loveslice, pair_key
from .conversation import Conversation, ConversationMessage, Phase, Outcome
from .spoken import SpokenLoveslice
from .journal import JournalEntry
