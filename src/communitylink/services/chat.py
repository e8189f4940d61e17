"""Chat sessions for direct and AI-backed conversations.

A ``ChatSessionManager`` owns every open session, including the backend chat
handle of AI conversations. The presentation layer only sees copies of the
transcript via ``transcript()`` and ``snapshot()``.

AI replies are streamed into a single placeholder message. Only one reply
may be in flight per session; a second ``send`` while one is pending is
rejected with ``SendOutcome.BUSY``.
"""

import asyncio
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

import structlog

from ..domain.models import ChatMessage, ChatPreview, ChatSnapshot, SenderRole, SessionState
from ..exceptions import UnknownConversationError
from .backend import ChatHandle, GenerativeBackend

logger = structlog.get_logger()

AI_CONVERSATION_ID = "ai-assistant"

AI_SYSTEM_INSTRUCTION = (
    "You are a helpful and friendly community assistant for the CommUnity app. "
    "You help neighbors connect, find local info, and solve neighborhood problems. "
    "Keep answers concise and polite."
)
AI_GREETING = (
    "Hello! I'm here to help you with anything related to our community. "
    "What can I do for you?"
)
AI_UNAVAILABLE = "AI Service Unavailable (Missing Key)"
AI_CONNECTION_ERROR = "Sorry, I'm having trouble connecting right now."
PEER_CANNED_REPLY = "Got it, thanks!"

CHAT_DIRECTORY = [
    ChatPreview(id=AI_CONVERSATION_ID, name="CommUnity AI Assistant",
                last_message="How can I help you today?", timestamp="Now",
                avatar="https://placehold.co/100x100/26a69a/ffffff?text=AI", is_ai=True),
    ChatPreview(id="c1", name="Neighborhood Watch", last_message="Did anyone see the red car?",
                timestamp="2m", unread=3, avatar="https://picsum.photos/50/50"),
    ChatPreview(id="c2", name="Gardening Club", last_message="Meeting this Sunday at 10?",
                timestamp="1h", avatar="https://picsum.photos/51/50"),
    ChatPreview(id="c3", name="Mike Ross", last_message="Thanks for the recommendation!",
                timestamp="1d", avatar="https://picsum.photos/52/50"),
]

MOCK_TRANSCRIPT = [
    (SenderRole.PEER, "Did anyone see the red car?"),
    (SenderRole.USER, "No, when was this?"),
    (SenderRole.PEER, "About 20 mins ago."),
]

ChatListener = Callable[[ChatSnapshot], None]


class SendOutcome(str, Enum):
    SENT = "sent"
    EMPTY = "empty"
    BUSY = "busy"


class ChatSession:
    """Transcript and backend handle for one conversation."""

    def __init__(self, preview: ChatPreview, handle: Optional[ChatHandle] = None) -> None:
        self.preview = preview
        self.handle = handle
        self.state = SessionState.UNINITIALIZED
        self._messages: List[ChatMessage] = []

    @property
    def conversation_id(self) -> str:
        return self.preview.id

    @property
    def is_ai(self) -> bool:
        return self.preview.is_ai

    @property
    def is_typing(self) -> bool:
        return self.is_ai and self.state == SessionState.AWAITING_RESPONSE

    def append(self, sender: SenderRole, text: str) -> ChatMessage:
        """Add a message to the end of the transcript."""
        message = ChatMessage(sender=sender, text=text)
        self._messages.append(message)
        return message

    def extend(self, message_id: str, text: str) -> None:
        """Grow an existing message in place; its position and id stay put."""
        for message in self._messages:
            if message.id == message_id:
                message.text += text
                return
        raise KeyError(message_id)

    def messages(self) -> List[ChatMessage]:
        """Copies of the transcript, oldest first."""
        return [m.model_copy() for m in self._messages]

    def snapshot(self) -> ChatSnapshot:
        return ChatSnapshot(
            conversation_id=self.conversation_id,
            name=self.preview.name,
            is_ai=self.is_ai,
            state=self.state,
            is_typing=self.is_typing,
            messages=self.messages(),
        )


class ChatSessionManager:
    """Opens, feeds and tears down chat sessions."""

    def __init__(
        self,
        backend: Optional[GenerativeBackend],
        directory: Optional[Iterable[ChatPreview]] = None,
        peer_reply_delay: float = 1.0,
    ) -> None:
        self.backend = backend
        self.peer_reply_delay = peer_reply_delay
        self._directory: Dict[str, ChatPreview] = {
            p.id: p for p in (CHAT_DIRECTORY if directory is None else directory)
        }
        self._sessions: Dict[str, ChatSession] = {}
        self._attached: Optional[str] = None
        self._listeners: List[ChatListener] = []

    def conversations(self) -> List[ChatPreview]:
        """List the chat directory."""
        return list(self._directory.values())

    def has_conversation(self, conversation_id: Optional[str]) -> bool:
        """Check whether the directory knows a conversation."""
        return bool(conversation_id) and conversation_id in self._directory

    def preview(self, conversation_id: str) -> ChatPreview:
        """Get a directory entry. Raises ``UnknownConversationError``."""
        try:
            return self._directory[conversation_id]
        except KeyError:
            raise UnknownConversationError(f"Conversation {conversation_id} not found")

    @property
    def attached_id(self) -> Optional[str]:
        """Conversation currently on screen."""
        return self._attached

    def open(self, conversation_id: str) -> ChatSession:
        """Attach a conversation to the screen, creating its session if needed.

        A session left while its reply was streaming is reattached as is,
        including whatever arrived while it was off screen.
        """
        preview = self.preview(conversation_id)
        session = self._sessions.get(conversation_id)
        if session is None:
            session = self._create_session(preview)
            self._sessions[conversation_id] = session
        self._attached = conversation_id
        self._notify(session)
        return session

    def _create_session(self, preview: ChatPreview) -> ChatSession:
        if not preview.is_ai:
            session = ChatSession(preview)
            for sender, text in MOCK_TRANSCRIPT:
                session.append(sender, text)
            session.state = SessionState.READY
            logger.info("chat_session_opened", conversation_id=preview.id, ai=False)
            return session

        if self.backend is None:
            session = ChatSession(preview)
            session.append(SenderRole.ASSISTANT, AI_UNAVAILABLE)
            session.state = SessionState.UNAVAILABLE
            logger.warning("chat_session_unavailable", conversation_id=preview.id)
            return session

        session = ChatSession(preview, handle=self.backend.start_chat(AI_SYSTEM_INSTRUCTION))
        session.append(SenderRole.ASSISTANT, AI_GREETING)
        session.state = SessionState.READY
        logger.info("chat_session_opened", conversation_id=preview.id, ai=True)
        return session

    def close(self, conversation_id: Optional[str] = None) -> None:
        """Detach a conversation from the screen.

        Idle sessions are dropped at once. A session awaiting a reply is kept,
        so late chunks still land in its transcript and a revisit shows them.
        """
        conversation_id = conversation_id or self._attached
        if conversation_id is None:
            return
        if self._attached == conversation_id:
            self._attached = None
        session = self._sessions.get(conversation_id)
        if session is not None and session.state != SessionState.AWAITING_RESPONSE:
            del self._sessions[conversation_id]
            logger.info("chat_session_closed", conversation_id=conversation_id)

    def session(self, conversation_id: str) -> Optional[ChatSession]:
        """Get the cached session for a conversation."""
        return self._sessions.get(conversation_id)

    def transcript(self, conversation_id: str) -> List[ChatMessage]:
        """Copies of a conversation transcript; empty when no session exists."""
        session = self._sessions.get(conversation_id)
        return session.messages() if session else []

    def snapshot(self) -> Optional[ChatSnapshot]:
        """The attached conversation, or ``None`` when no chat is on screen."""
        if self._attached is None:
            return None
        session = self._sessions.get(self._attached)
        return session.snapshot() if session else None

    def subscribe(self, listener: ChatListener) -> Callable[[], None]:
        """Register an attached-session listener. Returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def send(self, conversation_id: str, text: str) -> SendOutcome:
        """Post a user message and wait for the reply to settle."""
        session = self._sessions.get(conversation_id)
        if session is None:
            raise UnknownConversationError(f"Conversation {conversation_id} is not open")
        if not text or not text.strip():
            return SendOutcome.EMPTY
        if session.state == SessionState.AWAITING_RESPONSE:
            logger.info("chat_send_rejected_busy", conversation_id=conversation_id)
            return SendOutcome.BUSY

        session.append(SenderRole.USER, text)
        self._notify(session)

        if session.is_ai and session.handle is not None:
            await self._stream_reply(session, text)
        elif session.is_ai:
            session.append(SenderRole.ASSISTANT, AI_UNAVAILABLE)
            self._notify(session)
        else:
            await self._peer_reply(session)
        return SendOutcome.SENT

    async def _stream_reply(self, session: ChatSession, text: str) -> None:
        session.state = SessionState.AWAITING_RESPONSE
        placeholder = session.append(SenderRole.ASSISTANT, "")
        self._notify(session)
        chunk_count = 0
        try:
            async for chunk in session.handle.stream(text):
                if not chunk:
                    continue
                session.extend(placeholder.id, chunk)
                chunk_count += 1
                self._notify(session)
        except Exception as e:
            logger.error(
                "chat_stream_error",
                conversation_id=session.conversation_id,
                chunks_received=chunk_count,
                error=str(e),
            )
            session.append(SenderRole.ASSISTANT, AI_CONNECTION_ERROR)
        finally:
            session.state = SessionState.READY
            self._notify(session)
        logger.info("chat_reply_streamed", conversation_id=session.conversation_id, chunks=chunk_count)

    async def _peer_reply(self, session: ChatSession) -> None:
        session.state = SessionState.AWAITING_RESPONSE
        try:
            await asyncio.sleep(self.peer_reply_delay)
            session.append(SenderRole.PEER, PEER_CANNED_REPLY)
        finally:
            session.state = SessionState.READY
            self._notify(session)

    def _notify(self, session: ChatSession) -> None:
        if self._attached != session.conversation_id:
            return
        snapshot = session.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
