"""Prompt context and citations built from retrieved documents."""

from typing import List, Sequence

from knowledge_hub.models.chat import ChatMessage, Citation, MessageRole
from knowledge_hub.services.retrieval import RetrievedDocument

SYSTEM_PROMPT = (
    "You are a helpful assistant. Use the following context to answer questions. "
    "If you don't know the answer, say so."
)
NO_CONTEXT = "(no matching documents)"


def truncate(text: str, max_chars: int) -> str:
    """Cut text to max_chars, marking the cut with an ellipsis."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def build_context(documents: Sequence[RetrievedDocument], snippet_chars: int) -> str:
    """
    Concatenate title-prefixed content snippets.

    Args:
        documents: Grounding documents, most relevant first.
        snippet_chars: Maximum content characters per document.

    Returns:
        Context block for the instruction message.
    """
    return "\n\n".join(
        f"Document: {r.document.title}\n{truncate(r.document.content, snippet_chars)}"
        for r in documents
    )


def build_instruction(context: str) -> ChatMessage:
    """System message carrying the grounding context."""
    return ChatMessage(
        role=MessageRole.SYSTEM,
        content=f"{SYSTEM_PROMPT}\n\nContext:\n{context or NO_CONTEXT}",
    )


def build_citations(documents: Sequence[RetrievedDocument], preview_chars: int) -> List[Citation]:
    """One citation per grounding document, with a short preview."""
    return [
        Citation(
            document_id=r.document.id,
            title=r.document.title,
            snippet=truncate(r.document.content, preview_chars),
        )
        for r in documents
    ]
