"""
FastAPI Application Module

HTTP surface a presentation client uses to drive the interaction engine.
Every request maps onto one engine call; every response carries either the
affected resource or a fresh engine snapshot to render from.

Key Features:
- Async request handling with FastAPI
- Structured logging and Prometheus metrics
- CORS and OpenTelemetry support

AI failures never reach this layer as errors; they arrive as fallback
content from the engine.
"""

from typing import List, Optional
import asyncio
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CollectorRegistry, Counter, generate_latest
from pydantic import BaseModel
from structlog import get_logger

from ..config import Settings
from ..domain.models import (
    AlertLevel,
    ChatPreview,
    ComposeDraft,
    Coordinates,
    EngineSnapshot,
    PlaceSearchResult,
    Post,
    PostCategory,
    ViewState,
)
from ..exceptions import UnknownConversationError
from ..logging_config import configure_logging
from ..services.chat import SendOutcome
from ..services.engine import CommunityEngine, build_engine

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total requests", registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Total failed requests", registry=CUSTOM_REGISTRY)
CHAT_MESSAGES = Counter("chat_messages_total", "Chat messages accepted", registry=CUSTOM_REGISTRY)
POSTS_CREATED = Counter("posts_created_total", "Posts published", registry=CUSTOM_REGISTRY)

logger = get_logger()


class NavigateRequest(BaseModel):
    view: ViewState
    chat_id: Optional[str] = None


class FeedFilter(BaseModel):
    category: PostCategory


class CategoryRequest(BaseModel):
    category: Optional[PostCategory] = None


class DraftUpdate(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    price: Optional[str] = None
    event_date: Optional[str] = None
    urgency: Optional[AlertLevel] = None


class PostCreate(BaseModel):
    """Defines the structure for direct post creation requests"""
    category: PostCategory
    content: str
    title: Optional[str] = None
    image: Optional[str] = None
    price: Optional[str] = None
    event_date: Optional[str] = None
    alert_level: Optional[AlertLevel] = None


class MessageCreate(BaseModel):
    """Defines the structure for message creation requests"""
    content: str


class PlaceQuery(BaseModel):
    query: str


class TrendsResponse(BaseModel):
    insight: str


settings = Settings.from_env()
configure_logging(settings.log_level, settings.log_json)

# Core engine instance; one app session per process
engine = build_engine(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Starts the splash timer and cancels it on shutdown"""
    splash = asyncio.create_task(engine.run_splash())
    logger.info("application_startup_complete", ai_configured=engine.gateway.configured)

    yield

    splash.cancel()
    logger.info("application_shutdown_complete")


def get_engine() -> CommunityEngine:
    """Returns the interaction engine"""
    return engine


app = FastAPI(
    title="CommUnityLink Engine API",
    description="Navigation, feed, chat and AI assist for the CommUnityLink client",
    version="0.1.0",
    lifespan=lifespan
)

# Enable cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Set up request tracing
FastAPIInstrumentor.instrument_app(app)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Counts and logs requests"""
    REQUESTS.inc()
    logger.info("request_started", path=request.url.path, method=request.method)
    try:
        response = await call_next(request)
    except Exception as e:
        ERRORS.inc()
        logger.error("request_failed", path=request.url.path, error=str(e))
        raise
    if response.status_code >= 400:
        ERRORS.inc()
    return response


@app.get("/state", response_model=EngineSnapshot)
async def get_state(engine: CommunityEngine = Depends(get_engine)) -> EngineSnapshot:
    """Everything the client renders from"""
    return engine.snapshot()


@app.post("/navigate", response_model=EngineSnapshot)
async def navigate(
    request: NavigateRequest,
    engine: CommunityEngine = Depends(get_engine)
) -> EngineSnapshot:
    """Moves to another screen; invalid targets resolve to a valid one"""
    engine.navigate(request.view, request.chat_id)
    return engine.snapshot()


@app.post("/back", response_model=EngineSnapshot)
async def go_back(engine: CommunityEngine = Depends(get_engine)) -> EngineSnapshot:
    engine.go_back()
    return engine.snapshot()


@app.post("/onboarding/finish", response_model=EngineSnapshot)
async def finish_onboarding(engine: CommunityEngine = Depends(get_engine)) -> EngineSnapshot:
    engine.finish_onboarding()
    return engine.snapshot()


@app.post("/auth/login", response_model=EngineSnapshot)
async def login(engine: CommunityEngine = Depends(get_engine)) -> EngineSnapshot:
    engine.login()
    return engine.snapshot()


@app.post("/auth/logout", response_model=EngineSnapshot)
async def logout(engine: CommunityEngine = Depends(get_engine)) -> EngineSnapshot:
    engine.logout()
    return engine.snapshot()


@app.get("/posts", response_model=List[Post])
async def list_posts(
    category: PostCategory = PostCategory.ALL,
    engine: CommunityEngine = Depends(get_engine)
) -> List[Post]:
    """Lists the feed, newest first, optionally filtered by category"""
    return engine.store.list_by_category(category)


@app.post("/posts", response_model=Post)
async def create_post(
    request: PostCreate,
    engine: CommunityEngine = Depends(get_engine)
) -> Post:
    """Publishes a post as the current user without going through the composer"""
    post = engine.store.create(Post(author=engine.user, **request.model_dump()))
    if post is None:
        raise HTTPException(status_code=400, detail="Post rejected by the feed")
    POSTS_CREATED.inc()
    return post


@app.post("/feed/filter", response_model=EngineSnapshot)
async def set_feed_filter(
    request: FeedFilter,
    engine: CommunityEngine = Depends(get_engine)
) -> EngineSnapshot:
    engine.set_feed_category(request.category)
    return engine.snapshot()


@app.delete("/posts/{post_id}", status_code=204)
async def delete_post(
    post_id: str,
    engine: CommunityEngine = Depends(get_engine)
) -> Response:
    """Admin removal; unknown IDs are a no-op"""
    if not engine.user.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    engine.delete_post(post_id)
    return Response(status_code=204)


@app.post("/assist/trends", response_model=TrendsResponse)
async def analyze_trends(engine: CommunityEngine = Depends(get_engine)) -> TrendsResponse:
    """Summarizes current feed concerns for the admin dashboard"""
    return TrendsResponse(insight=await engine.analyze_trends())


@app.get("/compose", response_model=ComposeDraft)
async def get_draft(engine: CommunityEngine = Depends(get_engine)) -> ComposeDraft:
    draft = engine.compose.snapshot()
    if draft is None:
        raise HTTPException(status_code=409, detail="Composer is not open")
    return draft


@app.post("/compose/category", response_model=ComposeDraft)
async def select_category(
    request: CategoryRequest,
    engine: CommunityEngine = Depends(get_engine)
) -> ComposeDraft:
    if not engine.compose.active:
        raise HTTPException(status_code=409, detail="Composer is not open")
    if not engine.select_category(request.category):
        raise HTTPException(status_code=400, detail="Pick a concrete category")
    return engine.compose.snapshot()


@app.patch("/compose", response_model=ComposeDraft)
async def update_draft(
    request: DraftUpdate,
    engine: CommunityEngine = Depends(get_engine)
) -> ComposeDraft:
    if not engine.update_draft(**request.model_dump(exclude_none=True)):
        raise HTTPException(status_code=409, detail="Composer is not open")
    return engine.compose.snapshot()


@app.post("/compose/enhance", response_model=ComposeDraft)
async def enhance_draft(engine: CommunityEngine = Depends(get_engine)) -> ComposeDraft:
    """Refines the draft text; the draft is kept as is when AI is unavailable"""
    await engine.enhance_draft()
    draft = engine.compose.snapshot()
    if draft is None:
        raise HTTPException(status_code=409, detail="Composer was closed")
    return draft


@app.post("/compose/image", response_model=ComposeDraft)
async def generate_draft_image(engine: CommunityEngine = Depends(get_engine)) -> ComposeDraft:
    await engine.generate_draft_image()
    draft = engine.compose.snapshot()
    if draft is None:
        raise HTTPException(status_code=409, detail="Composer was closed")
    return draft


@app.post("/compose/submit", response_model=Post)
async def submit_post(engine: CommunityEngine = Depends(get_engine)) -> Post:
    """Publishes the draft and returns to the feed"""
    if not engine.compose.active:
        raise HTTPException(status_code=409, detail="Composer is not open")
    post = engine.submit_post()
    if post is None:
        raise HTTPException(status_code=400, detail="A category and some text are required")
    POSTS_CREATED.inc()
    return post


@app.get("/chats", response_model=List[ChatPreview])
async def list_chats(engine: CommunityEngine = Depends(get_engine)) -> List[ChatPreview]:
    return engine.chats.conversations()


@app.post("/chats/{chat_id}/open", response_model=EngineSnapshot)
async def open_chat(
    chat_id: str,
    engine: CommunityEngine = Depends(get_engine)
) -> EngineSnapshot:
    if not engine.chats.has_conversation(chat_id):
        logger.warning("conversation_not_found", conversation_id=chat_id)
        raise HTTPException(status_code=404, detail="Conversation not found")
    engine.open_chat(chat_id)
    return engine.snapshot()


@app.post("/chats/{chat_id}/messages", response_model=EngineSnapshot)
async def send_message(
    chat_id: str,
    message: MessageCreate,
    engine: CommunityEngine = Depends(get_engine)
) -> EngineSnapshot:
    """
    Sends a message to the open conversation and waits for the reply.
    AI replies are streamed into the transcript as they arrive.
    """
    if engine.chats.attached_id != chat_id:
        raise HTTPException(status_code=409, detail="Conversation is not open")
    try:
        outcome = await engine.send_message(message.content)
    except UnknownConversationError:
        raise HTTPException(status_code=404, detail="Conversation not found")

    if outcome == SendOutcome.EMPTY:
        raise HTTPException(status_code=400, detail="Message is empty")
    if outcome == SendOutcome.BUSY:
        raise HTTPException(status_code=409, detail="Still waiting for the previous reply")

    CHAT_MESSAGES.inc()
    logger.info("message_processed", conversation_id=chat_id, user_message_length=len(message.content))
    return engine.snapshot()


@app.post("/map/locate", response_model=EngineSnapshot)
async def locate(
    coordinates: Optional[Coordinates] = None,
    engine: CommunityEngine = Depends(get_engine)
) -> EngineSnapshot:
    """Records the client's position; without one the server-side provider or default is used"""
    await engine.locate_user(coordinates)
    return engine.snapshot()


@app.post("/assist/places", response_model=PlaceSearchResult)
async def search_places(
    request: PlaceQuery,
    engine: CommunityEngine = Depends(get_engine)
) -> PlaceSearchResult:
    return await engine.search_places(request.query)


@app.get("/metrics")
async def metrics():
    """Provides Prometheus metrics for system monitoring"""
    return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")
