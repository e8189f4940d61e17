"""Base repository interface."""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from ..domain.models import Post, PostCategory

PostListener = Callable[[List[Post]], None]


class PostRepository(ABC):
    """Abstract base class for post stores."""

    @abstractmethod
    def create(self, post: Post) -> Optional[Post]:
        """Prepend a post. Returns ``None`` when the post is rejected."""
        pass

    @abstractmethod
    def delete(self, post_id: str) -> bool:
        """Remove a post by ID. Unknown IDs are a no-op."""
        pass

    @abstractmethod
    def get(self, post_id: str) -> Optional[Post]:
        """Retrieve a post by ID."""
        pass

    @abstractmethod
    def list_by_category(self, category: PostCategory = PostCategory.ALL) -> List[Post]:
        """List posts newest first, optionally narrowed to one category."""
        pass

    @abstractmethod
    def subscribe(self, listener: PostListener) -> Callable[[], None]:
        """Register a listener for post list changes. Returns an unsubscribe callable."""
        pass
