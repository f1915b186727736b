"""@mention detection for the message composer.

Known limitation: names are matched as plain prefixes of the text after
"@", with no tie-break. With users "Ann" and "Anna", "@Anna" mentions both.
"""
from dataclasses import dataclass
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from teamchat.schemas.user import UserSummary


@dataclass(frozen=True)
class MentionQuery:
    start: int  # index of the "@"
    query: str


def active_mention(text: str, cursor: Optional[int] = None) -> Optional[MentionQuery]:
    """The @mention being typed at the cursor, if any.

    The "@" must open the text or follow whitespace, and no space may sit
    between it and the cursor.
    """
    cursor = len(text) if cursor is None else cursor
    before_cursor = text[:cursor]
    at_index = before_cursor.rfind("@")
    if at_index == -1:
        return None
    if at_index > 0 and not text[at_index - 1].isspace():
        return None
    query = before_cursor[at_index + 1:]
    if " " in query:
        return None
    return MentionQuery(start=at_index, query=query)


def mention_candidates(users: Iterable[UserSummary], query: str, exclude_user_id: Optional[str] = None) -> List[UserSummary]:
    query = query.lower()
    return [
        u for u in users
        if u.id != exclude_user_id and query in u.name.lower()
    ]


def insert_mention(text: str, mention: MentionQuery, user: UserSummary) -> Tuple[str, int]:
    """Replace the partial mention with "@Name " and return (text, new cursor)."""
    before = text[:mention.start]
    after = text[mention.start + len(mention.query) + 1:]
    inserted = f"@{user.name} "
    return before + inserted + after, len(before) + len(inserted)


def extract_mentions(text: str, users: Sequence[UserSummary]) -> List[str]:
    """Ids of users mentioned as "@Name" at the start of the text or after whitespace."""
    mentioned = []
    for user in users:
        pattern = r"(?:^|(?<=\s))@" + re.escape(user.name)
        if re.search(pattern, text) and user.id not in mentioned:
            mentioned.append(user.id)
    return mentioned
