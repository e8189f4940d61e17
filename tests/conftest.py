"""Shared fixtures and fake backends."""

from typing import AsyncIterator, List, Optional

import pytest

from communitylink.config import Settings
from communitylink.domain.models import Author, Coordinates, Post, PostCategory
from communitylink.exceptions import GeolocationError
from communitylink.repositories.memory import InMemoryPostRepository
from communitylink.services.engine import CommunityEngine


class FakeChatHandle:
    """Streams scripted replies, one list of chunks per turn."""

    def __init__(self, replies: List[List[str]], fail_after: Optional[int] = None, on_chunk=None):
        self.replies = list(replies)
        self.fail_after = fail_after
        self.on_chunk = on_chunk
        self.sent: List[str] = []

    async def stream(self, message: str) -> AsyncIterator[str]:
        self.sent.append(message)
        chunks = self.replies.pop(0) if self.replies else []
        for index, chunk in enumerate(chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise ConnectionError("stream dropped")
            if self.on_chunk is not None:
                await self.on_chunk(chunk)
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(chunks):
            raise ConnectionError("stream dropped")


class FakeBackend:
    """Records calls and returns canned answers, or raises when ``fail`` is set."""

    def __init__(self, text: str = "", image: Optional[str] = None, fail: bool = False,
                 chat: Optional[FakeChatHandle] = None):
        self.text = text
        self.image = image
        self.fail = fail
        self.chat = chat or FakeChatHandle([])
        self.prompts: List[str] = []
        self.system_instructions: List[str] = []

    async def generate_text(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("backend down")
        return self.text

    async def generate_image(self, prompt: str) -> Optional[str]:
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("backend down")
        return self.image

    def start_chat(self, system_instruction: str) -> FakeChatHandle:
        self.system_instructions.append(system_instruction)
        return self.chat


class FakeGeolocation:
    def __init__(self, position: Optional[Coordinates] = None, error: Optional[Exception] = None):
        self.position = position
        self.error = error

    async def current_position(self) -> Coordinates:
        if self.error is not None:
            raise self.error
        return self.position


AUTHOR = Author(id="u9", name="Test Neighbor")
ADMIN = Author(id="u0", name="Admin", is_admin=True)


def make_post(post_id: str, category: PostCategory = PostCategory.HELP, content: str = "Need a hand") -> Post:
    return Post(id=post_id, author=AUTHOR, category=category, content=content)


@pytest.fixture
def settings() -> Settings:
    return Settings(splash_delay=0.0, peer_reply_delay=0.0)


@pytest.fixture
def store() -> InMemoryPostRepository:
    return InMemoryPostRepository(seed=[])


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend(text="Refined text")


@pytest.fixture
def engine(settings, backend, store) -> CommunityEngine:
    return CommunityEngine(settings, backend=backend, store=store)


@pytest.fixture
def admin_engine(settings, backend, store) -> CommunityEngine:
    return CommunityEngine(settings, backend=backend, store=store, user=ADMIN)


@pytest.fixture
def denied_geolocation() -> FakeGeolocation:
    return FakeGeolocation(error=GeolocationError("permission denied"))
