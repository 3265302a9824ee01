"""Pydantic models for the question-answering and search API."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from knowledge_hub.models.chat import Citation
from knowledge_hub.models.document import Activity


class AskRequest(BaseModel):
    """One-shot question."""

    question: str = Field(..., min_length=1, max_length=2000)


class ChatMessageRequest(BaseModel):
    """A user turn in a chat session."""

    message: str = Field(..., min_length=1, max_length=2000)


class AnswerResponse(BaseModel):
    """Generated answer with citations."""

    answer: str
    sources: List[Citation]
    latency_ms: float


class ChatSessionResponse(BaseModel):
    """Identifier of a newly created chat session."""

    session_id: str


class ChatClosedResponse(BaseModel):
    """Result of ending a chat session."""

    session_id: str
    closed: bool


class SuggestedQuestionsResponse(BaseModel):
    """Questions the user might ask about their documents."""

    questions: List[str]


class FeedbackRequest(BaseModel):
    """Feedback on an answer."""

    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    rating: int
    comment: Optional[str] = Field(None, max_length=2000)
    session_id: Optional[str] = None


class FeedbackResponse(BaseModel):
    """Stored feedback identifier."""

    id: str


class SearchHit(BaseModel):
    """A ranked search result."""

    document_id: str
    title: str
    snippet: str
    score: float


class SearchResponse(BaseModel):
    """Ranked search results."""

    query: str
    results: List[SearchHit]
    mode: str


class ActivityResponse(BaseModel):
    """One recorded question or search."""

    id: str
    action: str
    document_id: Optional[str] = None
    details: Dict[str, Any]
    created_at: datetime

    @classmethod
    def from_activity(cls, activity: Activity) -> "ActivityResponse":
        """Build a response from a stored activity entry."""
        return cls(
            id=activity.id,
            action=activity.action.value,
            document_id=activity.document_id,
            details=activity.details,
            created_at=activity.created_at,
        )


class HistoryResponse(BaseModel):
    """A user's recent activity, newest first."""

    activities: List[ActivityResponse]
