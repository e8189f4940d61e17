"""Domain models for the community engine."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class PostCategory(str, Enum):
    """Feed categories. ``ALL`` is a filter, never stored on a post."""

    ALL = "All"
    HELP = "Help"
    IDEAS = "Ideas"
    EVENTS = "Events"
    MARKETPLACE = "Marketplace"
    SAFETY = "Safety"


class AlertLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    EMERGENCY = "emergency"


class ViewState(str, Enum):
    """Top-level screens."""

    SPLASH = "splash"
    ONBOARDING = "onboarding"
    AUTH_LOGIN = "auth-login"
    AUTH_SIGNUP = "auth-signup"
    AUTH_VERIFY = "auth-verify"
    HOME = "home"
    MAP = "map"
    MARKETPLACE = "marketplace"
    CHATS = "chats"
    CHAT_DETAIL = "chat-detail"
    PROFILE = "profile"
    ADMIN = "admin"
    CREATE_POST = "create-post"


class Author(BaseModel):
    """Author model."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    avatar: str = ""
    location: str = ""
    reputation: int = 0
    is_verified: bool = False
    is_admin: bool = False


def new_post_id() -> str:
    return f"p{uuid4().hex[:12]}"


class Post(BaseModel):
    """Feed post. Frozen: the store replaces, never edits."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_post_id)
    author: Author
    category: PostCategory
    content: str
    title: Optional[str] = None
    image: Optional[str] = None
    price: Optional[str] = None
    event_date: Optional[str] = None
    alert_level: Optional[AlertLevel] = None
    likes: int = 0
    comments: int = 0
    timestamp: str = "Just now"


class SenderRole(str, Enum):
    USER = "user"
    PEER = "peer"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """Message model."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    sender: SenderRole
    text: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ChatPreview(BaseModel):
    """Entry in the conversation list."""

    id: str
    name: str
    last_message: str = ""
    timestamp: str = ""
    unread: int = 0
    avatar: str = ""
    is_ai: bool = False


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    AWAITING_RESPONSE = "awaiting-response"
    UNAVAILABLE = "unavailable"


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class LocationReference(BaseModel):
    title: str
    uri: str


class PlaceSearchResult(BaseModel):
    text: str
    references: List[LocationReference] = []


class ComposeDraft(BaseModel):
    """In-progress post held by the create-post screen."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    category: Optional[PostCategory] = None
    title: str = ""
    body: str = ""
    price: str = ""
    event_date: str = ""
    urgency: Optional[AlertLevel] = None
    image: Optional[str] = None
    notice: Optional[str] = None
    is_enhancing: bool = False
    is_generating_image: bool = False


class NavigationState(BaseModel):
    model_config = ConfigDict(frozen=True)

    view: ViewState
    active_chat_id: Optional[str] = None


class ChatSnapshot(BaseModel):
    """Read-only view of the conversation on screen."""

    conversation_id: str
    name: str
    is_ai: bool
    state: SessionState
    is_typing: bool
    messages: List[ChatMessage]


class EngineSnapshot(BaseModel):
    """Everything the presentation layer renders from."""

    navigation: NavigationState
    show_navigation_bar: bool
    feed_category: PostCategory
    posts: List[Post]
    chat: Optional[ChatSnapshot] = None
    draft: Optional[ComposeDraft] = None
    location: Coordinates
    place_results: Optional[PlaceSearchResult] = None
    is_searching: bool = False
    trend_insight: Optional[str] = None
    is_analyzing: bool = False
