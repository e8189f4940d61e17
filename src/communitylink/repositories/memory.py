"""In-memory post store."""

from typing import Callable, Iterable, List, Optional

import structlog

from ..domain.models import AlertLevel, Author, Post, PostCategory
from .base import PostListener, PostRepository

logger = structlog.get_logger()

SEED_POSTS = [
    Post(
        id="p1",
        author=Author(id="u2", name="Sarah Connor", avatar="https://picsum.photos/101/100",
                      location="Greenwood", reputation=320),
        category=PostCategory.HELP,
        content=(
            "Can anyone recommend a good plumber who is available on weekends? "
            "My kitchen sink is leaking badly!"
        ),
        likes=5,
        comments=8,
        timestamp="2h ago",
    ),
    Post(
        id="p2",
        author=Author(id="u3", name="Mike Ross", avatar="https://picsum.photos/102/100",
                      location="Greenwood", reputation=550, is_verified=True),
        category=PostCategory.SAFETY,
        content=(
            "Suspicious activity reported near the park entrance. "
            "Please stay alert and keep gates locked."
        ),
        alert_level=AlertLevel.WARNING,
        likes=42,
        comments=12,
        timestamp="5h ago",
    ),
    Post(
        id="p3",
        author=Author(id="u4", name="Emily Clark", avatar="https://picsum.photos/103/100",
                      location="Greenwood", reputation=120),
        category=PostCategory.MARKETPLACE,
        content="Selling a vintage bicycle. Good condition, just needs new tires. $50 obo.",
        image="https://picsum.photos/400/250",
        likes=10,
        comments=2,
        timestamp="1d ago",
    ),
]


class InMemoryPostRepository(PostRepository):
    """Post store kept newest first.

    All mutation goes through ``create`` and ``delete``; readers only ever get
    a fresh list, so holding on to a result cannot change the store.
    """

    def __init__(self, seed: Optional[Iterable[Post]] = None) -> None:
        self._posts: List[Post] = list(SEED_POSTS if seed is None else seed)
        self._listeners: List[PostListener] = []
        logger.info("post_repository_initialized", post_count=len(self._posts))

    def __len__(self) -> int:
        return len(self._posts)

    def create(self, post: Post) -> Optional[Post]:
        """Prepend a post after checking the feed invariants."""
        if post.category == PostCategory.ALL:
            logger.warning("post_rejected", reason="missing_category", post_id=post.id)
            return None
        if not post.content.strip():
            logger.warning("post_rejected", reason="empty_content", post_id=post.id)
            return None
        if post.alert_level is not None and post.category != PostCategory.SAFETY:
            logger.warning("post_rejected", reason="alert_on_non_safety", post_id=post.id)
            return None
        if any(existing.id == post.id for existing in self._posts):
            logger.warning("post_rejected", reason="duplicate_id", post_id=post.id)
            return None

        self._posts.insert(0, post)
        logger.info("post_created", post_id=post.id, category=post.category.value)
        self._notify()
        return post

    def delete(self, post_id: str) -> bool:
        """Remove a post. Returns False when nothing matched."""
        remaining = [p for p in self._posts if p.id != post_id]
        if len(remaining) == len(self._posts):
            logger.info("post_delete_noop", post_id=post_id)
            return False

        self._posts = remaining
        logger.info("post_deleted", post_id=post_id)
        self._notify()
        return True

    def get(self, post_id: str) -> Optional[Post]:
        """Retrieve a post by ID."""
        for post in self._posts:
            if post.id == post_id:
                return post
        return None

    def list_by_category(self, category: PostCategory = PostCategory.ALL) -> List[Post]:
        """List posts newest first; All returns the whole feed."""
        if category == PostCategory.ALL:
            return list(self._posts)
        return [p for p in self._posts if p.category == category]

    def subscribe(self, listener: PostListener) -> Callable[[], None]:
        """Register a feed listener. Returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = list(self._posts)
        for listener in list(self._listeners):
            listener(snapshot)
