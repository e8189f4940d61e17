"""Application interaction engine.

Ties the view-state machine, post store, chat sessions, composer and AI
assist gateway together. User gestures come in as method calls; the
presentation layer re-renders from ``snapshot()``.
"""

import asyncio
from typing import List, Optional, Protocol

import structlog

from ..config import Settings
from ..domain.models import (
    Author,
    Coordinates,
    EngineSnapshot,
    NavigationState,
    PlaceSearchResult,
    Post,
    PostCategory,
    ViewState,
)
from ..exceptions import GeolocationError, UnknownConversationError
from ..repositories.base import PostRepository
from ..repositories.memory import InMemoryPostRepository
from .assist import AssistGateway
from .backend import GenerativeBackend, build_backend
from .chat import ChatSessionManager, SendOutcome
from .compose import ComposeFlow
from .navigation import ViewStateMachine

logger = structlog.get_logger()

CURRENT_USER = Author(
    id="u1",
    name="Alex Johnson",
    avatar="https://picsum.photos/100/100",
    location="Greenwood District",
    reputation=450,
    is_verified=True,
)

AUTH_VIEWS = frozenset({ViewState.AUTH_LOGIN, ViewState.AUTH_SIGNUP, ViewState.AUTH_VERIFY})


class GeolocationProvider(Protocol):
    """One-shot device position lookup. Raises ``GeolocationError`` on denial."""

    async def current_position(self) -> Coordinates:
        ...


class CommunityEngine:
    """Top-level controller for one app session."""

    def __init__(
        self,
        settings: Settings,
        backend: Optional[GenerativeBackend] = None,
        store: Optional[PostRepository] = None,
        geolocation: Optional[GeolocationProvider] = None,
        user: Author = CURRENT_USER,
    ) -> None:
        self.settings = settings
        self.user = user
        self.store = store if store is not None else InMemoryPostRepository()
        self.geolocation = geolocation
        self.gateway = AssistGateway(backend)
        self.chats = ChatSessionManager(backend, peer_reply_delay=settings.peer_reply_delay)
        self.compose = ComposeFlow(self.gateway, user)
        self.navigation = ViewStateMachine()
        self.navigation.on_transition(self._on_transition)

        self.feed_category = PostCategory.ALL
        self.user_location: Optional[Coordinates] = None
        self.place_results: Optional[PlaceSearchResult] = None
        self.is_searching = False
        self.trend_insight: Optional[str] = None
        self.is_analyzing = False
        logger.info("engine_initialized", ai_configured=self.gateway.configured, user_id=user.id)

    # Navigation

    async def run_splash(self) -> NavigationState:
        """Hold the splash screen for the configured delay, then onboard."""
        await asyncio.sleep(self.settings.splash_delay)
        if self.navigation.view == ViewState.SPLASH:
            return self.navigation.transition(ViewState.ONBOARDING)
        return self.navigation.snapshot()

    def finish_onboarding(self) -> NavigationState:
        if self.navigation.view == ViewState.ONBOARDING:
            return self.navigation.transition(ViewState.AUTH_LOGIN)
        return self.navigation.snapshot()

    def login(self) -> NavigationState:
        if self.navigation.view in AUTH_VIEWS:
            return self.navigation.transition(ViewState.HOME)
        return self.navigation.snapshot()

    def logout(self) -> NavigationState:
        return self.navigation.transition(ViewState.AUTH_LOGIN)

    def navigate(self, target: ViewState, chat_id: Optional[str] = None) -> NavigationState:
        if target == ViewState.ADMIN and not self.user.is_admin:
            logger.warning("admin_access_denied", user_id=self.user.id)
            return self.navigation.snapshot()
        if target == ViewState.CHAT_DETAIL and not self.chats.has_conversation(chat_id):
            chat_id = None
        return self.navigation.transition(target, chat_id)

    def open_chat(self, chat_id: str) -> NavigationState:
        return self.navigate(ViewState.CHAT_DETAIL, chat_id)

    def go_back(self) -> NavigationState:
        return self.navigation.go_back()

    def _on_transition(self, previous: NavigationState, current: NavigationState) -> None:
        if previous.view == ViewState.CREATE_POST and current.view != ViewState.CREATE_POST:
            self.compose.discard()
        if current.view == ViewState.CREATE_POST and previous.view != ViewState.CREATE_POST:
            self.compose.begin()

        if previous.active_chat_id and previous.active_chat_id != current.active_chat_id:
            self.chats.close(previous.active_chat_id)
        if current.view == ViewState.CHAT_DETAIL and current.active_chat_id != previous.active_chat_id:
            self.chats.open(current.active_chat_id)

    # Feed and moderation

    def set_feed_category(self, category: PostCategory) -> None:
        self.feed_category = category

    def posts(self) -> List[Post]:
        return self.store.list_by_category(self.feed_category)

    def delete_post(self, post_id: str) -> bool:
        """Admin removal. Confirmation happens in the presentation layer."""
        if not self.user.is_admin:
            logger.warning("post_delete_denied", user_id=self.user.id, post_id=post_id)
            return False
        return self.store.delete(post_id)

    async def analyze_trends(self) -> str:
        corpus = [post.content for post in self.store.list_by_category(PostCategory.ALL)]
        self.is_analyzing = True
        try:
            self.trend_insight = await self.gateway.analyze_trends(corpus)
        finally:
            self.is_analyzing = False
        return self.trend_insight

    # Composer

    def select_category(self, category: Optional[PostCategory]) -> bool:
        return self.compose.select_category(category)

    def update_draft(self, **fields) -> bool:
        return self.compose.update(**fields)

    async def enhance_draft(self) -> Optional[str]:
        return await self.compose.enhance()

    async def generate_draft_image(self) -> Optional[str]:
        return await self.compose.generate_image()

    def submit_post(self) -> Optional[Post]:
        post = self.compose.submit(self.store)
        if post is not None:
            self.navigation.transition(ViewState.HOME)
        return post

    # Chat

    async def send_message(self, text: str) -> SendOutcome:
        chat_id = self.chats.attached_id
        if chat_id is None:
            raise UnknownConversationError("No conversation is open")
        return await self.chats.send(chat_id, text)

    # Map

    async def locate_user(self, reported: Optional[Coordinates] = None) -> Coordinates:
        """Use a client-reported position, else ask the device; keep the fallback if it says no."""
        if reported is not None:
            self.user_location = reported
            logger.info("user_location_reported")
        elif self.geolocation is not None:
            try:
                self.user_location = await self.geolocation.current_position()
                logger.info("user_located")
            except GeolocationError as e:
                logger.warning("geolocation_denied", error=str(e))
            except Exception as e:
                logger.error("geolocation_error", error=str(e))
        return self.user_location or self.settings.default_location

    async def search_places(self, query: str) -> PlaceSearchResult:
        self.is_searching = True
        self.place_results = None
        try:
            self.place_results = await self.gateway.search_places(
                query, self.user_location or self.settings.default_location
            )
        finally:
            self.is_searching = False
        return self.place_results

    def clear_search(self) -> None:
        self.place_results = None

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            navigation=self.navigation.snapshot(),
            show_navigation_bar=self.navigation.shows_navigation_bar(),
            feed_category=self.feed_category,
            posts=self.posts(),
            chat=self.chats.snapshot(),
            draft=self.compose.snapshot(),
            location=self.user_location or self.settings.default_location,
            place_results=self.place_results,
            is_searching=self.is_searching,
            trend_insight=self.trend_insight,
            is_analyzing=self.is_analyzing,
        )


def build_engine(settings: Optional[Settings] = None, **kwargs) -> CommunityEngine:
    """Engine wired to the Gemini backend named by ``settings``."""
    settings = settings or Settings.from_env()
    kwargs.setdefault("user", CURRENT_USER.model_copy(update={"is_admin": settings.admin}))
    return CommunityEngine(settings, backend=build_backend(settings), **kwargs)
