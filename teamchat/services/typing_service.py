# teamchat/services/typing_service.py
from typing import Callable, Dict, List, Optional, Tuple
import logging
import time

from teamchat.config import settings
from teamchat.schemas.typing import TypingUser

logger = logging.getLogger(__name__)


class TypingPresenceTracker:
    """Ephemeral per-conversation set of typing users.

    Clients send typing=false themselves after a few idle seconds; entries
    that are never switched off (a client went away mid-sentence) expire after
    `ttl_seconds` so other viewers do not see a stale indicator forever.
    """

    def __init__(self, ttl_seconds: float = settings.TYPING_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # { "conversation_id": { "user_id": (name, expires_at) } }
        self._typing: Dict[str, Dict[str, Tuple[str, float]]] = {}

    def set_typing(self, conversation_id: str, user_id: str, name: str, is_typing: bool) -> None:
        users = self._typing.setdefault(conversation_id, {})
        if is_typing:
            users[user_id] = (name, self._clock() + self.ttl_seconds)
            logger.debug(f"User {user_id} typing in conversation {conversation_id}")
        else:
            users.pop(user_id, None)
        if not users:
            del self._typing[conversation_id]

    def typing_users(self, conversation_id: str, exclude_user_id: Optional[str] = None) -> List[TypingUser]:
        self._prune(conversation_id)
        users = self._typing.get(conversation_id, {})
        return [
            TypingUser(id=user_id, name=name)
            for user_id, (name, _) in users.items()
            if user_id != exclude_user_id
        ]

    def clear_conversation(self, conversation_id: str) -> None:
        self._typing.pop(conversation_id, None)

    def _prune(self, conversation_id: str) -> None:
        users = self._typing.get(conversation_id)
        if not users:
            return
        now = self._clock()
        expired = [user_id for user_id, (_, expires_at) in users.items() if expires_at <= now]
        for user_id in expired:
            del users[user_id]
            logger.info(f"Typing entry for user {user_id} in conversation {conversation_id} expired")
        if not users:
            del self._typing[conversation_id]


# Global instance shared by all requests
typing_tracker = TypingPresenceTracker()


def get_typing_tracker() -> TypingPresenceTracker:
    return typing_tracker
