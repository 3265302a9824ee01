"""One-shot question answering, suggested questions and answer feedback."""

import logging
import time
from typing import List, Optional

from knowledge_hub.core.exceptions import GenerationError, ProviderError, ValidationError
from knowledge_hub.models.chat import ChatAnswer, ChatMessage, MessageRole
from knowledge_hub.models.document import Activity, ActivityAction, DocumentFilter, Feedback
from knowledge_hub.monitoring.metrics import (
    query_counter,
    query_errors_total,
    query_latency_seconds,
)
from knowledge_hub.services.activity import ActivityLog
from knowledge_hub.services.grounding import build_citations, build_context, build_instruction
from knowledge_hub.services.retrieval import RetrievalPipeline
from knowledge_hub.services.sessions import GenerationProvider
from knowledge_hub.services.store import SORT_UPDATED_DESC, DocumentStore

logger = logging.getLogger(__name__)

SUGGESTION_DOCUMENTS = 5
SUGGESTION_SNIPPET_CHARS = 200
SUGGESTION_TEMPLATES = (
    "What is {title} about?",
    "What are the key points in {title}?",
    "Can you summarize {title}?",
)
DEFAULT_SUGGESTIONS = [
    "What documents do I have?",
    "Which of my documents were updated most recently?",
    "What topics do my documents cover?",
]


class QueryProcessor:
    """Processes questions that do not belong to a chat session."""

    def __init__(
        self,
        retrieval: RetrievalPipeline,
        llm: GenerationProvider,
        store: DocumentStore,
        context_snippet_chars: int = 500,
        source_snippet_chars: int = 150,
        suggested_questions_count: int = 5,
        activity: Optional[ActivityLog] = None,
    ) -> None:
        """
        Initialize query processor.

        Args:
            retrieval: Retrieval pipeline used for grounding.
            llm: Generation provider.
            store: Document store, for suggestions and feedback.
            context_snippet_chars: Content characters per document in the prompt.
            source_snippet_chars: Content characters per citation preview.
            suggested_questions_count: Questions returned by suggest_questions.
            activity: Activity log; one over the same store when omitted.
        """
        self.retrieval = retrieval
        self.llm = llm
        self.store = store
        self.context_snippet_chars = context_snippet_chars
        self.source_snippet_chars = source_snippet_chars
        self.suggested_questions_count = suggested_questions_count
        self.activity = activity if activity is not None else ActivityLog(store)

    async def ask(self, question: str, requester_id: str) -> ChatAnswer:
        """
        Answer a single question from the requester's visible documents.

        Args:
            question: User question.
            requester_id: User whose visibility applies.

        Returns:
            Generated answer with citations.

        Raises:
            ValidationError: If the question is empty.
            GenerationError: If the generation provider fails.
        """
        if not question or not question.strip():
            raise ValidationError("Question is required")

        query_counter.inc()
        start_time = time.time()
        grounding = await self.retrieval.find_grounding(question, requester_id)
        context = build_context(grounding, self.context_snippet_chars)
        prompt = [
            build_instruction(context),
            ChatMessage(role=MessageRole.USER, content=question),
        ]

        try:
            answer = await self.llm.chat([m.to_provider() for m in prompt])
        except GenerationError:
            query_errors_total.inc()
            raise
        except Exception as e:
            query_errors_total.inc()
            logger.error(f"Failed to answer question: {str(e)}")
            raise GenerationError(f"Failed to generate response: {str(e)}") from e
        finally:
            query_latency_seconds.observe(time.time() - start_time)

        sources = build_citations(grounding, self.source_snippet_chars)
        await self.activity.record(
            requester_id,
            ActivityAction.ASK,
            question=question,
            sources=[s.document_id for s in sources],
        )
        return ChatAnswer(answer=answer, sources=sources)

    async def question_history(self, requester_id: str, limit: int = 50) -> List[Activity]:
        """Questions the requester asked, newest first."""
        return await self.activity.history(requester_id, [ActivityAction.ASK], limit=limit)

    async def suggest_questions(self, requester_id: str) -> List[str]:
        """
        Suggest questions about the requester's recent documents.

        The generation provider is asked first; when it fails or answers
        with nothing usable, questions are built from document titles.

        Args:
            requester_id: User whose visibility applies.

        Returns:
            Up to suggested_questions_count questions.
        """
        documents = await self.store.find(
            DocumentFilter(visible_to=requester_id),
            sort=SORT_UPDATED_DESC,
            limit=SUGGESTION_DOCUMENTS,
        )
        if not documents:
            return DEFAULT_SUGGESTIONS[: self.suggested_questions_count]

        summaries = "\n".join(
            f"- {d.title}: {d.content[:SUGGESTION_SNIPPET_CHARS]}" for d in documents
        )
        prompt = (
            f"Based on the following documents, suggest {self.suggested_questions_count} "
            "questions a user might ask about them. Return one question per line "
            "without numbering.\n\n"
            f"{summaries}"
        )

        try:
            reply = await self.llm.chat(
                [ChatMessage(role=MessageRole.USER, content=prompt).to_provider()])
        except ProviderError as e:
            logger.warning(f"Falling back to template questions: {str(e)}")
            return self._template_questions([d.title for d in documents])

        questions = _parse_questions(reply)
        if not questions:
            return self._template_questions([d.title for d in documents])
        return questions[: self.suggested_questions_count]

    def _template_questions(self, titles: List[str]) -> List[str]:
        questions = []
        for template in SUGGESTION_TEMPLATES:
            for title in titles:
                questions.append(template.format(title=title))
        return questions[: self.suggested_questions_count]

    async def submit_feedback(
        self,
        user_id: str,
        question: str,
        answer: str,
        rating: int,
        comment: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Feedback:
        """
        Record a user's rating of an answer.

        Raises:
            ValidationError: If the rating is outside 1-5 or a field is empty.
        """
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be an integer between 1 and 5")
        if not question.strip() or not answer.strip():
            raise ValidationError("Question and answer are required")

        feedback = Feedback(
            user_id=user_id,
            question=question,
            answer=answer,
            rating=rating,
            comment=comment,
            session_id=session_id,
        )
        saved = await self.store.save_feedback(feedback)
        logger.info(f"Recorded feedback {saved.id} with rating {rating}")
        return saved


def _parse_questions(reply: str) -> List[str]:
    questions = []
    for line in reply.splitlines():
        line = line.strip().lstrip("-*0123456789.) ").strip()
        if line:
            questions.append(line)
    return questions
