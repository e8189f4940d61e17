"""Test suite for AI assist capabilities and their fallbacks."""

import pytest

from communitylink.config import DEFAULT_COORDINATES
from communitylink.domain.models import Coordinates
from communitylink.services.assist import (
    PLACES_FAILED,
    PLACES_UNAVAILABLE,
    REFINE_UNAVAILABLE,
    TRENDS_EMPTY_CORPUS,
    TRENDS_FAILED,
    TRENDS_NO_INSIGHT,
    TRENDS_UNAVAILABLE,
    AssistGateway,
    parse_place_answer,
)

from conftest import FakeBackend


@pytest.mark.asyncio
async def test_refine_unconfigured_returns_notice():
    """Test refinement without a key returns the missing-key notice."""
    result = await AssistGateway(None).refine_text("hello", "Help")
    assert result == REFINE_UNAVAILABLE
    assert result != "hello"


@pytest.mark.asyncio
async def test_refine_failure_returns_original_draft():
    """Test a backend error leaves the draft untouched."""
    gateway = AssistGateway(FakeBackend(fail=True))
    assert await gateway.refine_text("hello", "Help") == "hello"


@pytest.mark.asyncio
async def test_refine_success_returns_stripped_text():
    """Test a successful refinement and the prompt framing."""
    backend = FakeBackend(text="  Could a neighbor help me?  \n")
    result = await AssistGateway(backend).refine_text("need help pls", "Help")
    assert result == "Could a neighbor help me?"
    prompt = backend.prompts[0]
    assert "need help pls" in prompt
    assert '"Help"' in prompt
    assert "under 100 words" in prompt
    assert "hashtags" in prompt


@pytest.mark.asyncio
async def test_refine_empty_answer_keeps_draft():
    """Test an empty model answer does not blank the draft."""
    assert await AssistGateway(FakeBackend(text="   ")).refine_text("hello") == "hello"


@pytest.mark.asyncio
async def test_generate_image_paths():
    """Test image generation returns data or None, never raises."""
    assert await AssistGateway(None).generate_image("a lost cat") is None
    assert await AssistGateway(FakeBackend(fail=True)).generate_image("a lost cat") is None
    assert await AssistGateway(FakeBackend(image=None)).generate_image("a lost cat") is None
    image = await AssistGateway(FakeBackend(image="data:image/png;base64,AAAA")).generate_image("a lost cat")
    assert image == "data:image/png;base64,AAAA"


@pytest.mark.asyncio
async def test_analyze_empty_corpus_skips_backend():
    """Test an empty corpus never reaches the backend."""
    backend = FakeBackend(text="should not be used")
    gateway = AssistGateway(backend)
    assert await gateway.analyze_trends([]) == TRENDS_EMPTY_CORPUS
    assert await gateway.analyze_trends(["", "  "]) == TRENDS_EMPTY_CORPUS
    assert backend.prompts == []


@pytest.mark.asyncio
async def test_analyze_unconfigured_reports_unavailable_before_corpus():
    """Test a missing key wins over an empty corpus."""
    gateway = AssistGateway(None)
    assert await gateway.analyze_trends([]) == TRENDS_UNAVAILABLE
    assert await gateway.analyze_trends(["Speeding on Main St"]) == TRENDS_UNAVAILABLE


@pytest.mark.asyncio
async def test_analyze_trends_outcomes():
    """Test trend analysis success, failure, blank answer and missing key."""
    corpus = ["Speeding on Main St", "Lost dog near the park"]

    backend = FakeBackend(text="Traffic safety is the top concern.")
    assert await AssistGateway(backend).analyze_trends(corpus) == "Traffic safety is the top concern."
    assert "Speeding on Main St\nLost dog near the park" in backend.prompts[0]

    assert await AssistGateway(FakeBackend(fail=True)).analyze_trends(corpus) == TRENDS_FAILED
    assert await AssistGateway(FakeBackend(text="")).analyze_trends(corpus) == TRENDS_NO_INSIGHT
    assert await AssistGateway(None).analyze_trends(corpus) == TRENDS_UNAVAILABLE


@pytest.mark.asyncio
async def test_search_places_parses_references():
    """Test narrative text and location links are separated."""
    backend = FakeBackend(text=(
        "There are two cafes close by.\n"
        "PLACE: Corner Brew | https://maps.google.com/?cid=1\n"
        "PLACE: Bean There | https://maps.google.com/?cid=2"
    ))
    result = await AssistGateway(backend).search_places("coffee", Coordinates(latitude=1.5, longitude=2.5))
    assert result.text == "There are two cafes close by."
    assert [(r.title, r.uri) for r in result.references] == [
        ("Corner Brew", "https://maps.google.com/?cid=1"),
        ("Bean There", "https://maps.google.com/?cid=2"),
    ]
    assert "latitude 1.5" in backend.prompts[0]


@pytest.mark.asyncio
async def test_search_places_defaults_coordinates():
    """Test the fallback coordinate is used when none is given."""
    backend = FakeBackend(text="Nothing nearby.")
    await AssistGateway(backend).search_places("parks")
    assert f"latitude {DEFAULT_COORDINATES.latitude}" in backend.prompts[0]
    assert f"longitude {DEFAULT_COORDINATES.longitude}" in backend.prompts[0]


@pytest.mark.asyncio
async def test_search_places_failure_and_unconfigured():
    """Test degraded search returns a message and no references."""
    failed = await AssistGateway(FakeBackend(fail=True)).search_places("parks")
    assert failed.text == PLACES_FAILED
    assert failed.references == []

    unavailable = await AssistGateway(None).search_places("parks")
    assert unavailable.text == PLACES_UNAVAILABLE
    assert unavailable.references == []


def test_parse_place_answer_ignores_malformed_lines():
    """Test only well-formed PLACE lines become references."""
    result = parse_place_answer("Try the library.\nPLACE: missing link\nplace: Library | https://x.test/lib")
    assert [r.title for r in result.references] == ["Library"]
    assert "PLACE: missing link" in result.text
