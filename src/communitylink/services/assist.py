"""AI assist capabilities for composing, moderating and searching.

Each capability is independent and stateless. None of them raise: an
unconfigured backend yields a fixed notice, and any backend failure is
logged and swapped for a capability-specific fallback so the caller's
workflow carries on as if AI were absent.
"""

import re
from typing import List, Optional, Sequence

import structlog

from ..config import DEFAULT_COORDINATES
from ..domain.models import Coordinates, LocationReference, PlaceSearchResult
from .backend import GenerativeBackend

logger = structlog.get_logger()

REFINE_UNAVAILABLE = "API Key missing. Please configure your environment."
TRENDS_UNAVAILABLE = "AI services unavailable."
TRENDS_EMPTY_CORPUS = "No posts to analyze yet."
TRENDS_FAILED = "Could not analyze trends."
TRENDS_NO_INSIGHT = "No insights available."
PLACES_UNAVAILABLE = "Map search is unavailable (Missing API Key)."
PLACES_FAILED = "Sorry, I couldn't search for places right now."
PLACES_NO_ANSWER = "No places found for that search."

_PLACE_LINE = re.compile(r"^\s*PLACE:\s*(?P<title>[^|]+?)\s*\|\s*(?P<uri>\S+)\s*$", re.IGNORECASE)


def parse_place_answer(raw: str) -> PlaceSearchResult:
    """Split a model answer into narrative text and ``PLACE: title | url`` lines."""
    narrative: List[str] = []
    references: List[LocationReference] = []
    for line in raw.splitlines():
        match = _PLACE_LINE.match(line)
        if match:
            references.append(LocationReference(title=match.group("title"), uri=match.group("uri")))
        else:
            narrative.append(line)
    text = "\n".join(narrative).strip()
    return PlaceSearchResult(text=text or PLACES_NO_ANSWER, references=references)


class AssistGateway:
    """Gateway to the generative backend for one-shot assist calls."""

    def __init__(self, backend: Optional[GenerativeBackend]) -> None:
        self.backend = backend

    @property
    def configured(self) -> bool:
        return self.backend is not None

    async def refine_text(self, draft: str, category_hint: str = "General") -> str:
        """Rewrite a post draft. The original draft survives any failure."""
        if self.backend is None:
            logger.warning("refine_skipped", reason="api_key_missing")
            return REFINE_UNAVAILABLE

        prompt = f"""You are an AI assistant for a community app called CommUnityLink.
The user is drafting a post of type: "{category_hint}".
Here is their rough draft: "{draft}".

Please rewrite this draft to be more engaging, polite, and clear for a neighborhood community.
Keep it concise (under 100 words). Do not add hashtags.
Return ONLY the refined text."""
        try:
            refined = await self.backend.generate_text(prompt)
        except Exception as e:
            logger.error("refine_error", error=str(e))
            return draft

        refined = (refined or "").strip()
        return refined or draft

    async def generate_image(self, prompt: str) -> Optional[str]:
        """Generate an illustration for a post, or ``None`` for no image."""
        if self.backend is None or not prompt.strip():
            return None
        try:
            image = await self.backend.generate_image(
                f"A friendly, realistic illustration for a neighborhood community post: {prompt}"
            )
        except Exception as e:
            logger.error("image_generation_error", error=str(e))
            return None
        return image or None

    async def analyze_trends(self, corpus: Sequence[str]) -> str:
        """Summarize the top concerns across a set of post snippets."""
        if self.backend is None:
            return TRENDS_UNAVAILABLE
        snippets = [s.strip() for s in corpus if s and s.strip()]
        if not snippets:
            return TRENDS_EMPTY_CORPUS

        joined = "\n".join(snippets)
        prompt = (
            "Analyze these community post snippets and summarize the top 3 trends "
            f"or concerns in one short paragraph:\n{joined}"
        )
        try:
            summary = await self.backend.generate_text(prompt)
        except Exception as e:
            logger.error("trend_analysis_error", error=str(e), snippet_count=len(snippets))
            return TRENDS_FAILED
        return (summary or "").strip() or TRENDS_NO_INSIGHT

    async def search_places(
        self, query: str, coordinates: Optional[Coordinates] = None
    ) -> PlaceSearchResult:
        """Answer a local search with a narrative and location links."""
        if self.backend is None:
            return PlaceSearchResult(text=PLACES_UNAVAILABLE)
        if not query.strip():
            return PlaceSearchResult(text=PLACES_NO_ANSWER)

        where = coordinates or DEFAULT_COORDINATES
        prompt = f"""You help neighbors find local places.
The user is near latitude {where.latitude}, longitude {where.longitude}.
Question: {query}

Answer in two or three sentences. Then list each relevant place on its own line
exactly as: PLACE: <name> | <https link to the place on a map>"""
        try:
            raw = await self.backend.generate_text(prompt)
        except Exception as e:
            logger.error("place_search_error", error=str(e), query=query)
            return PlaceSearchResult(text=PLACES_FAILED)

        result = parse_place_answer(raw or "")
        logger.info("place_search_complete", query=query, reference_count=len(result.references))
        return result
