from dataclasses import dataclass, field
import re
from typing import Iterable, List

from teamchat.schemas.message import STICKER_TYPE, AttachmentSchema, MessageResponse

URL_PATTERN = re.compile(r"https?://[^\s]+")


@dataclass(frozen=True)
class MediaItem:
    message: MessageResponse
    attachment: AttachmentSchema


@dataclass(frozen=True)
class LinkItem:
    message: MessageResponse
    url: str


@dataclass
class MediaCollection:
    images: List[MediaItem] = field(default_factory=list)
    files: List[MediaItem] = field(default_factory=list)
    links: List[LinkItem] = field(default_factory=list)


def is_image(attachment: AttachmentSchema) -> bool:
    return attachment.type.startswith("image/")


def is_voice(attachment: AttachmentSchema) -> bool:
    return attachment.type.startswith("audio/")


def is_sticker(attachment: AttachmentSchema) -> bool:
    return attachment.type == STICKER_TYPE


def find_links(text: str) -> List[str]:
    return URL_PATTERN.findall(text or "")


def extract_media(messages: Iterable[MessageResponse]) -> MediaCollection:
    """Shared images, files and links of a conversation, in message order.

    Stickers and voice notes are not listed; deleted messages contribute nothing.
    """
    media = MediaCollection()
    for message in messages:
        if message.is_deleted:
            continue
        for attachment in message.attachments:
            if is_image(attachment):
                media.images.append(MediaItem(message, attachment))
            elif not (is_sticker(attachment) or is_voice(attachment)):
                media.files.append(MediaItem(message, attachment))
        for url in find_links(message.content):
            media.links.append(LinkItem(message, url))
    return media


def search_messages(messages: Iterable[MessageResponse], query: str) -> List[MessageResponse]:
    """Case-insensitive in-conversation search over message text."""
    query = query.strip().lower()
    if not query:
        return []
    return [m for m in messages if not m.is_deleted and query in m.content.lower()]
