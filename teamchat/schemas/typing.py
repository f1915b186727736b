from .base import CamelModel

class TypingSignal(CamelModel):
    is_typing: bool

class TypingUser(CamelModel):
    id: str
    name: str
