"""Question answering and chat session endpoints."""

import logging
import time

from fastapi import APIRouter, Query, status

from knowledge_hub.api.deps import Services, UserId, http_error
from knowledge_hub.models.qa_api import (
    ActivityResponse,
    AnswerResponse,
    AskRequest,
    ChatClosedResponse,
    ChatMessageRequest,
    ChatSessionResponse,
    FeedbackRequest,
    FeedbackResponse,
    HistoryResponse,
    SuggestedQuestionsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/qa", tags=["Questions"])


@router.post("/ask", response_model=AnswerResponse)
async def ask(body: AskRequest, services: Services, user_id: UserId) -> AnswerResponse:
    """
    Answer a question from the requester's documents.

    Args:
        body: Question.

    Returns:
        Answer with citations and latency.
    """
    start_time = time.time()
    try:
        result = await services.query_processor.ask(body.question, user_id)
    except Exception as e:
        raise http_error(e, "Question")

    latency_ms = (time.time() - start_time) * 1000
    logger.info(f"Question answered in {latency_ms:.2f}ms")
    return AnswerResponse(answer=result.answer, sources=result.sources, latency_ms=latency_ms)


@router.post("/chat", response_model=ChatSessionResponse, status_code=status.HTTP_201_CREATED)
async def start_chat(services: Services, user_id: UserId) -> ChatSessionResponse:
    """Open a chat session for the requester."""
    return ChatSessionResponse(session_id=services.sessions.create_session(user_id))


@router.post("/chat/{session_id}", response_model=AnswerResponse)
async def chat_message(
    session_id: str, body: ChatMessageRequest, services: Services, user_id: UserId
) -> AnswerResponse:
    """Submit a turn in a chat session."""
    start_time = time.time()
    try:
        result = await services.sessions.submit_turn(session_id, body.message, requester_id=user_id)
    except Exception as e:
        raise http_error(e, "Chat turn")

    latency_ms = (time.time() - start_time) * 1000
    return AnswerResponse(answer=result.answer, sources=result.sources, latency_ms=latency_ms)


@router.delete("/chat/{session_id}", response_model=ChatClosedResponse)
async def end_chat(
    session_id: str,
    services: Services,
    user_id: UserId,
    missing_ok: bool = Query(False),
) -> ChatClosedResponse:
    """Close a chat session."""
    try:
        closed = services.sessions.close_session(
            session_id, requester_id=user_id, missing_ok=missing_ok)
    except Exception as e:
        raise http_error(e, "Chat close")
    return ChatClosedResponse(session_id=session_id, closed=closed)


@router.get("/suggested-questions", response_model=SuggestedQuestionsResponse)
async def suggested_questions(services: Services, user_id: UserId) -> SuggestedQuestionsResponse:
    """Questions the requester might ask about recent documents."""
    try:
        questions = await services.query_processor.suggest_questions(user_id)
    except Exception as e:
        raise http_error(e, "Question suggestion")
    return SuggestedQuestionsResponse(questions=questions)


@router.post("/feedback", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
async def submit_feedback(body: FeedbackRequest, services: Services, user_id: UserId) -> FeedbackResponse:
    """Record a rating of an answer."""
    try:
        feedback = await services.query_processor.submit_feedback(
            user_id=user_id,
            question=body.question,
            answer=body.answer,
            rating=body.rating,
            comment=body.comment,
            session_id=body.session_id,
        )
    except Exception as e:
        raise http_error(e, "Feedback")
    return FeedbackResponse(id=feedback.id)


@router.get("/history", response_model=HistoryResponse)
async def question_history(
    services: Services,
    user_id: UserId,
    limit: int = Query(50, ge=1, le=200),
) -> HistoryResponse:
    """Questions the requester asked, newest first."""
    try:
        activities = await services.query_processor.question_history(user_id, limit=limit)
    except Exception as e:
        raise http_error(e, "Question history")
    return HistoryResponse(activities=[ActivityResponse.from_activity(a) for a in activities])
