from teamchat.models.user import User
from teamchat.models.conversation import Conversation, Participant
from teamchat.models.message import Message, MessageReaction, MessageReadReceipt
from teamchat.models.attachment import Attachment

__all__ = [
    "User",
    "Conversation", "Participant",
    "Message", "MessageReaction", "MessageReadReceipt",
    "Attachment",
]
