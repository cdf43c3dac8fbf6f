"""
Conversation client.

Python counterpart of the browser logic that drives one open conversation:
REST calls for every transition, a push listener for the partner's
transitions, and reconciliation against the authoritative record.
"""
from .api import ApiError, ConversationApi
from .controller import ConversationController, ViewPhase, derive_view
from .listener import RealtimeListener
