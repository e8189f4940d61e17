"""Exception hierarchy for the engine.

AI and network failures never surface through these; they are absorbed at
the gateway and chat session boundary. What remains are local conditions a
caller can act on.
"""


class CommunityLinkError(Exception):
    """Base exception for all engine errors."""
    pass


class GeolocationError(CommunityLinkError):
    """Raised by a geolocation provider when the position is denied or unknown."""
    pass


class UnknownConversationError(CommunityLinkError):
    """Raised when a conversation id is not in the chat directory."""
    pass
