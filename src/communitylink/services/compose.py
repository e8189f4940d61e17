"""Post composer state.

The draft lives only while the create-post screen is up. AI calls started
from a draft hold on to that draft object; when they return after the draft
was discarded or replaced, their result is dropped instead of applied.
"""

from typing import Optional

import structlog

from ..domain.models import AlertLevel, Author, ComposeDraft, Post, PostCategory
from ..repositories.base import PostRepository
from .assist import REFINE_UNAVAILABLE, AssistGateway

logger = structlog.get_logger()

EDITABLE_FIELDS = ("title", "body", "price", "event_date", "urgency")


def _optional(value: str) -> Optional[str]:
    value = (value or "").strip()
    return value or None


class ComposeFlow:
    """Owns the draft for the post creation screen."""

    def __init__(self, gateway: AssistGateway, author: Author) -> None:
        self.gateway = gateway
        self.author = author
        self._draft: Optional[ComposeDraft] = None

    @property
    def active(self) -> bool:
        return self._draft is not None

    def snapshot(self) -> Optional[ComposeDraft]:
        return self._draft.model_copy() if self._draft else None

    def begin(self) -> ComposeDraft:
        self._draft = ComposeDraft()
        logger.info("draft_started", draft_id=self._draft.id)
        return self._draft.model_copy()

    def discard(self) -> None:
        if self._draft is not None:
            logger.info("draft_discarded", draft_id=self._draft.id)
        self._draft = None

    def select_category(self, category: Optional[PostCategory]) -> bool:
        """Pick the post type, or ``None`` to go back to the type picker."""
        if self._draft is None or category == PostCategory.ALL:
            return False
        self._draft.category = category
        if category == PostCategory.SAFETY and self._draft.urgency is None:
            self._draft.urgency = AlertLevel.WARNING
        return True

    def update(self, **fields) -> bool:
        """Apply draft edits coming from the form."""
        if self._draft is None:
            return False
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown draft fields: {sorted(unknown)}")
        for name, value in fields.items():
            setattr(self._draft, name, value)
        return True

    async def enhance(self) -> Optional[str]:
        """Refine the draft body with AI. Returns the applied text, if any."""
        draft = self._draft
        if draft is None or not draft.body.strip() or draft.is_enhancing:
            return None
        if not self.gateway.configured:
            draft.notice = REFINE_UNAVAILABLE
            return None

        draft.is_enhancing = True
        draft.notice = None
        category = draft.category.value if draft.category else "General"
        try:
            refined = await self.gateway.refine_text(draft.body, category)
        finally:
            draft.is_enhancing = False

        if self._draft is not draft:
            logger.info("draft_result_dropped", draft_id=draft.id, capability="refine")
            return None
        draft.body = refined
        return refined

    async def generate_image(self) -> Optional[str]:
        """Attach an AI illustration built from the title and body."""
        draft = self._draft
        if draft is None or draft.is_generating_image:
            return None
        prompt = " ".join(p for p in (draft.title.strip(), draft.body.strip()) if p)
        if not prompt:
            return None

        draft.is_generating_image = True
        try:
            image = await self.gateway.generate_image(prompt)
        finally:
            draft.is_generating_image = False

        if self._draft is not draft:
            logger.info("draft_result_dropped", draft_id=draft.id, capability="image")
            return None
        if image is not None:
            draft.image = image
        return image

    def build_post(self) -> Optional[Post]:
        draft = self._draft
        if draft is None or draft.category in (None, PostCategory.ALL) or not draft.body.strip():
            return None
        is_safety = draft.category == PostCategory.SAFETY
        return Post(
            author=self.author,
            category=draft.category,
            content=draft.body.strip(),
            title=_optional(draft.title),
            image=draft.image,
            price=_optional(draft.price) if draft.category == PostCategory.MARKETPLACE else None,
            event_date=_optional(draft.event_date) if draft.category == PostCategory.EVENTS else None,
            alert_level=(draft.urgency or AlertLevel.WARNING) if is_safety else None,
        )

    def submit(self, store: PostRepository) -> Optional[Post]:
        """Publish the draft. The draft survives a rejected submit."""
        post = self.build_post()
        if post is None:
            logger.info("draft_submit_rejected", draft_id=self._draft.id if self._draft else None)
            return None
        created = store.create(post)
        if created is not None:
            self.discard()
        return created
