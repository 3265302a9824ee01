"""Script to seed the knowledge hub with sample documents."""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from knowledge_hub.core.dependencies import ServiceContainer

SEED_OWNER = "seed-user"

SAMPLE_DOCUMENTS = [
    {
        "title": "Introduction to RAG Systems",
        "content": "Retrieval-Augmented Generation (RAG) combines the power of information retrieval with language models. "
        "It allows systems to access external knowledge bases and provide accurate, up-to-date answers. "
        "RAG systems typically consist of a retriever that finds relevant documents and a generator that creates responses.",
        "tags": ["rag", "llm"],
    },
    {
        "title": "Document Versioning",
        "content": "Every edit to a document's content is stored as an immutable version with a gap-free number. "
        "Version 1 is created together with the document, and later versions record who changed what and why. "
        "The document always reports the highest version number as its current version.",
        "tags": ["versioning"],
    },
    {
        "title": "Embeddings for Semantic Search",
        "content": "Embeddings map text to high-dimensional vectors so that similar meanings land close together. "
        "Cosine similarity between a query vector and document vectors ranks documents by relevance. "
        "Caching embeddings avoids paying for the same provider call twice.",
        "tags": ["embeddings", "search"],
    },
]


async def ingest_sample_documents() -> None:
    """Create the sample documents as public documents of the seed user."""
    services = ServiceContainer()
    await services.initialize()
    try:
        for doc in SAMPLE_DOCUMENTS:
            document = await services.documents.create_document(
                title=doc["title"],
                content=doc["content"],
                owner_id=SEED_OWNER,
                is_public=True,
                tags=doc["tags"],
            )
            status = "with embedding" if document.has_embedding else "without embedding"
            print(f"Inserted document: {document.title} ({status})")
    finally:
        await services.shutdown()

    print(f"\nIngested {len(SAMPLE_DOCUMENTS)} documents")


if __name__ == "__main__":
    asyncio.run(ingest_sample_documents())
