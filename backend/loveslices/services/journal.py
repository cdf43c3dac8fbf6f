"""
Journal index.
Entries are written as a side effect of loveslice creation, inside the
caller's transaction, and are only ever read afterwards.
"""
from tortoise.expressions import Q

from loveslices.models import JournalEntry


async def add_written_entry(loveslice, question, first, second, using_db=None) -> JournalEntry:
    searchable = "\n".join([question.content, first.content, second.content])
    return await JournalEntry.create(
        user1_id=loveslice.user1_id,
        user2_id=loveslice.user2_id,
        written_loveslice_id=loveslice.id,
        theme=question.theme,
        searchable_content=searchable,
        using_db=using_db,
    )


async def add_spoken_entry(spoken, messages: list[str], using_db=None) -> JournalEntry:
    outcome = getattr(spoken.outcome, "value", spoken.outcome)
    searchable = "\n".join([spoken.theme, outcome, *messages])
    return await JournalEntry.create(
        user1_id=spoken.user1_id,
        user2_id=spoken.user2_id,
        spoken_loveslice_id=spoken.id,
        theme=spoken.theme,
        searchable_content=searchable,
        using_db=using_db,
    )


async def list_entries(user, theme: str | None = None, search: str | None = None) -> list[JournalEntry]:
    """
    Entries involving the user or their current partner, newest first.
    `search` is a case-insensitive substring match over searchable_content
    and takes precedence over `theme`.
    """
    ids = [user.id] + ([user.partner_id] if user.partner_id else [])
    qs = JournalEntry.filter(Q(user1_id__in=ids) | Q(user2_id__in=ids))
    if search:
        qs = qs.filter(searchable_content__icontains=search)
    elif theme:
        qs = qs.filter(theme=theme)
    return await qs.order_by("-created_at", "-id")
