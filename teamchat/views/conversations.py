from typing import Iterable, List

from teamchat.schemas.conversation import ConversationResponse


def matches_search(conversation: ConversationResponse, query: str) -> bool:
    """Case-insensitive substring match on the conversation name or any member name."""
    query = query.strip().lower()
    if not query:
        return True
    if conversation.name and query in conversation.name.lower():
        return True
    return any(query in member.name.lower() for member in conversation.members)


def sort_conversations(conversations: Iterable[ConversationResponse]) -> List[ConversationResponse]:
    """Pinned first, then most recent message first; no messages sorts last in its tier."""
    def sort_key(conversation: ConversationResponse):
        last = conversation.last_message
        return (not conversation.is_pinned, last is None, -last.created_at.timestamp() if last else 0.0)

    return sorted(conversations, key=sort_key)


def filter_conversations(
    conversations: Iterable[ConversationResponse],
    search_query: str = "",
    show_archived: bool = False,
) -> List[ConversationResponse]:
    """The conversation list as displayed. Returns a new list; the input is left untouched.

    The normal view hides archived conversations, the archive view shows only them.
    """
    visible = [
        c for c in conversations
        if c.is_archived == show_archived and matches_search(c, search_query)
    ]
    return sort_conversations(visible)


def total_unread(conversations: Iterable[ConversationResponse]) -> int:
    """Unread badge count; muted and archived conversations do not contribute."""
    return sum(c.unread_count for c in conversations if not c.is_muted and not c.is_archived)
