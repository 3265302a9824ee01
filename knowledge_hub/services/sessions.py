"""Multi-turn retrieval-augmented chat sessions."""

import asyncio
import logging
import threading
from datetime import timedelta
from typing import Dict, List, Optional, Protocol

from knowledge_hub.core.exceptions import GenerationError, NotFoundError, ValidationError
from knowledge_hub.models.chat import ChatAnswer, ChatMessage, ChatSession, MessageRole
from knowledge_hub.models.document import utcnow
from knowledge_hub.monitoring.metrics import (
    chat_sessions_created,
    chat_turn_errors_total,
    chat_turns_total,
)
from knowledge_hub.services.grounding import build_citations, build_context, build_instruction
from knowledge_hub.services.retrieval import RetrievalPipeline

logger = logging.getLogger(__name__)


class GenerationProvider(Protocol):
    """Anything that continues a conversation."""

    async def chat(self, messages: List[dict]) -> str:
        ...


class RAGSessionManager:
    """
    Owns the session table and runs chat turns end to end.

    A session is Created by create_session, Active while turns are
    submitted, and Closed once close_session removes it; every later call
    with that id raises NotFoundError.

    The table is guarded by a threading.Lock that is released before
    retrieval and generation run. Turns within one session are serialized by
    a per-session asyncio.Lock, so each prompt sees every earlier exchange;
    different sessions proceed independently. A turn is committed only after the
    provider replies: when generation fails the history is left exactly as
    it was, including the user's message.
    """

    def __init__(
        self,
        retrieval: RetrievalPipeline,
        llm: GenerationProvider,
        history_limit: int = 10,
        context_snippet_chars: int = 500,
        source_snippet_chars: int = 150,
    ) -> None:
        """
        Initialize the session manager.

        Args:
            retrieval: Retrieval pipeline used for grounding.
            llm: Generation provider.
            history_limit: Maximum messages kept per session.
            context_snippet_chars: Content characters per document in the prompt.
            source_snippet_chars: Content characters per citation preview.
        """
        if history_limit < 1:
            raise ValueError("history_limit must be positive")
        self.retrieval = retrieval
        self.llm = llm
        self.history_limit = history_limit
        self.context_snippet_chars = context_snippet_chars
        self.source_snippet_chars = source_snippet_chars
        self._sessions: Dict[str, ChatSession] = {}
        self._turn_locks: Dict[str, asyncio.Lock] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create_session(self, user_id: str) -> str:
        """
        Register an empty session.

        Args:
            user_id: Owner of the session; retrieval runs with their visibility.

        Returns:
            Opaque session identifier.
        """
        session = ChatSession(user_id=user_id)
        with self._lock:
            self._sessions[session.session_id] = session
        chat_sessions_created.inc()
        logger.info(f"Created chat session {session.session_id}")
        return session.session_id

    def _get(self, session_id: str, requester_id: Optional[str]) -> ChatSession:
        session = self._sessions.get(session_id)
        if session is None or (requester_id is not None and session.user_id != requester_id):
            raise NotFoundError(f"Chat session {session_id} not found")
        return session

    def get_history(self, session_id: str, requester_id: Optional[str] = None) -> List[ChatMessage]:
        """
        Snapshot of a session's messages, oldest first.

        Raises:
            NotFoundError: If the session does not exist or belongs to
                another user.
        """
        with self._lock:
            return list(self._get(session_id, requester_id).messages)

    async def submit_turn(
        self,
        session_id: str,
        user_message: str,
        requester_id: Optional[str] = None,
    ) -> ChatAnswer:
        """
        Answer a user message within a session.

        Args:
            session_id: Session identifier.
            user_message: The user's message.
            requester_id: When given, must own the session.

        Returns:
            Generated answer with citations for the grounding documents.

        Raises:
            ValidationError: If the message is empty.
            NotFoundError: If the session is unknown or closed.
            GenerationError: If the provider fails; history is unchanged.
        """
        if not user_message or not user_message.strip():
            raise ValidationError("Message is required")

        with self._lock:
            self._get(session_id, requester_id)
            turn_lock = self._turn_locks.setdefault(session_id, asyncio.Lock())

        async with turn_lock:
            return await self._run_turn(session_id, user_message, requester_id)

    async def _run_turn(
        self, session_id: str, user_message: str, requester_id: Optional[str]
    ) -> ChatAnswer:
        with self._lock:
            session = self._get(session_id, requester_id)
            history = list(session.messages)
            owner_id = session.user_id

        chat_turns_total.inc()
        grounding = await self.retrieval.find_grounding(user_message, owner_id)
        context = build_context(grounding, self.context_snippet_chars)

        user_turn = ChatMessage(role=MessageRole.USER, content=user_message)
        prompt = [build_instruction(context), *history, user_turn]

        try:
            reply = await self.llm.chat([m.to_provider() for m in prompt])
        except GenerationError:
            chat_turn_errors_total.inc()
            logger.error(f"Generation failed for chat session {session_id}")
            raise
        except Exception as e:
            chat_turn_errors_total.inc()
            logger.error(f"Generation failed for chat session {session_id}: {str(e)}")
            raise GenerationError(f"Failed to generate response: {str(e)}") from e

        assistant_turn = ChatMessage(role=MessageRole.ASSISTANT, content=reply)
        with self._lock:
            session = self._get(session_id, requester_id)
            session.messages.extend([user_turn, assistant_turn])
            overflow = len(session.messages) - self.history_limit
            if overflow > 0:
                del session.messages[:overflow]
            session.updated_at = utcnow()

        return ChatAnswer(
            answer=reply,
            sources=build_citations(grounding, self.source_snippet_chars),
        )

    def close_session(
        self,
        session_id: str,
        requester_id: Optional[str] = None,
        missing_ok: bool = False,
    ) -> bool:
        """
        Remove a session.

        Args:
            session_id: Session identifier.
            requester_id: When given, must own the session.
            missing_ok: Return False instead of raising for unknown ids.

        Returns:
            Whether a session was removed.

        Raises:
            NotFoundError: If the session is unknown and missing_ok is False.
        """
        with self._lock:
            try:
                self._get(session_id, requester_id)
            except NotFoundError:
                if missing_ok:
                    return False
                raise
            del self._sessions[session_id]
            self._turn_locks.pop(session_id, None)
        logger.info(f"Closed chat session {session_id}")
        return True

    def sweep_idle(self, max_idle: timedelta) -> int:
        """
        Close sessions with no activity for longer than max_idle.

        Returns:
            Number of sessions closed.
        """
        cutoff = utcnow() - max_idle
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.updated_at < cutoff]
            for sid in expired:
                del self._sessions[sid]
                self._turn_locks.pop(sid, None)
        if expired:
            logger.info(f"Closed {len(expired)} idle chat sessions")
        return len(expired)
