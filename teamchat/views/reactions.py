from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

from teamchat.schemas.message import ReactionResponse


@dataclass(frozen=True)
class ReactionGroup:
    emoji: str
    user_ids: Tuple[str, ...]
    users: Tuple[str, ...]  # display names, same order as user_ids
    has_current_user: bool

    @property
    def count(self) -> int:
        return len(self.user_ids)


def group_reactions(
    reactions: Optional[Iterable[Union[ReactionResponse, ReactionGroup]]],
    current_user_id: Optional[str] = None,
) -> List[ReactionGroup]:
    """Group a message's reactions by emoji in first-appearance order.

    Accepts raw reactions or already-built groups, so regrouping a grouped
    list gives the same result. A user is counted once per emoji.
    """
    order: List[str] = []
    members: Dict[str, Dict[str, str]] = {}

    for item in reactions or []:
        if isinstance(item, ReactionGroup):
            pairs = zip(item.user_ids, item.users)
        else:
            pairs = [(item.user_id, item.user_name)]
        if item.emoji not in members:
            order.append(item.emoji)
            members[item.emoji] = {}
        for user_id, name in pairs:
            members[item.emoji].setdefault(user_id, name)

    return [
        ReactionGroup(
            emoji=emoji,
            user_ids=tuple(members[emoji]),
            users=tuple(members[emoji].values()),
            has_current_user=current_user_id is not None and current_user_id in members[emoji],
        )
        for emoji in order
    ]


def has_reacted(reactions: Iterable[ReactionResponse], user_id: str, emoji: str) -> bool:
    return any(r.user_id == user_id and r.emoji == emoji for r in reactions)
