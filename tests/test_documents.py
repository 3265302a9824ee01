"""Tests for the document service."""

import asyncio

import pytest

from conftest import HeldEmbeddingProvider
from knowledge_hub.core.exceptions import (
    DatabaseError,
    EmbeddingError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from knowledge_hub.models.document import ActivityAction
from knowledge_hub.services.documents import DocumentService
from knowledge_hub.services.embedding_cache import EmbeddingCache


class TestCreateDocument:
    @pytest.mark.asyncio
    async def test_creates_first_version_and_embedding(self, documents, store, embedder):
        document = await documents.create_document(
            "Greeting", "Hello", "U1", tags=["a", "a", " b "])

        assert document.current_version == 1
        assert document.tags == ["a", "b"]
        assert document.has_embedding
        assert embedder.calls == ["Hello"]

        versions = await store.list_versions(document.id)
        assert len(versions) == 1
        assert versions[0].version_number == 1
        assert versions[0].change_note == "Initial version"
        assert versions[0].author_id == "U1"

    @pytest.mark.asyncio
    async def test_embedding_failure_does_not_fail_creation(self, documents, embedder, store):
        embedder.fail = True

        document = await documents.create_document("Greeting", "Hello", "U1")

        assert not document.has_embedding
        assert await store.find_by_id(document.id) is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title,content", [("", "body"), ("title", ""), ("  ", "body")])
    async def test_requires_title_and_content(self, documents, title, content):
        with pytest.raises(ValidationError):
            await documents.create_document(title, content, "U1")


class TestVisibility:
    @pytest.mark.asyncio
    async def test_private_document_hidden_from_others(self, documents):
        document = await documents.create_document("Mine", "private", "U1")

        assert (await documents.get_document(document.id, "U1")).id == document.id
        with pytest.raises(NotFoundError):
            await documents.get_document(document.id, "U2")

    @pytest.mark.asyncio
    async def test_public_document_visible_to_everyone(self, documents):
        document = await documents.create_document("Shared", "public", "U1", is_public=True)
        assert (await documents.get_document(document.id, "U2")).title == "Shared"

    @pytest.mark.asyncio
    async def test_list_documents_paginates_visible_only(self, documents):
        for i in range(3):
            await documents.create_document(f"mine {i}", "content", "U1")
        await documents.create_document("theirs", "content", "U2")
        await documents.create_document("public", "content", "U2", is_public=True)

        page, total, pages = await documents.list_documents("U1", page=1, limit=2)

        assert total == 4
        assert pages == 2
        assert len(page) == 2

    @pytest.mark.asyncio
    async def test_list_documents_filters(self, documents):
        await documents.create_document("Python tips", "content", "U1", tags=["python"])
        await documents.create_document("Cooking", "pasta", "U1", tags=["food"])

        by_search, _, _ = await documents.list_documents("U1", search="python")
        by_tag, _, _ = await documents.list_documents("U1", tags=["food"])

        assert [d.title for d in by_search] == ["Python tips"]
        assert [d.title for d in by_tag] == ["Cooking"]

    @pytest.mark.asyncio
    async def test_public_listing(self, documents):
        await documents.create_document("private", "content", "U1")
        await documents.create_document("public", "content", "U1", is_public=True)

        public, total, _ = await documents.list_public_documents()

        assert [d.title for d in public] == ["public"]
        assert total == 1


class TestUpdateDocument:
    @pytest.mark.asyncio
    async def test_content_change_creates_version(self, documents, store):
        document = await documents.create_document("Greeting", "Hello", "U1")

        updated = await documents.update_document(document.id, "U1", content="Hello world")

        assert updated.current_version == 2
        assert updated.content == "Hello world"
        assert updated.has_embedding
        latest = await store.get_version(document.id, 2)
        assert latest.change_note == "Document content updated"

    @pytest.mark.asyncio
    async def test_metadata_change_keeps_version(self, documents):
        document = await documents.create_document("Greeting", "Hello", "U1")

        updated = await documents.update_document(
            document.id, "U1", title="Renamed", is_public=True, content="Hello")

        assert updated.title == "Renamed"
        assert updated.is_public
        assert updated.current_version == 1

    @pytest.mark.asyncio
    async def test_only_owner_may_update(self, documents):
        document = await documents.create_document("Greeting", "Hello", "U1", is_public=True)
        with pytest.raises(PermissionDeniedError):
            await documents.update_document(document.id, "U2", title="Hijacked")

    @pytest.mark.asyncio
    async def test_missing_document(self, documents):
        with pytest.raises(NotFoundError):
            await documents.update_document("missing", "U1", title="x")


class TestVersions:
    @pytest.mark.asyncio
    async def test_explicit_version_with_default_note(self, documents):
        document = await documents.create_document("Greeting", "Hello", "U1")

        version = await documents.create_version(document.id, "U1", "Hello again")

        assert version.version_number == 2
        assert version.change_note == "No change description provided"

    @pytest.mark.asyncio
    async def test_history_is_newest_first(self, documents):
        document = await documents.create_document("Greeting", "v1", "U1")
        await documents.create_version(document.id, "U1", "v2", "second")
        await documents.create_version(document.id, "U1", "v3", "third")

        current, versions = await documents.list_versions(document.id, "U1")

        assert current.current_version == 3
        assert [v.version_number for v in versions] == [3, 2, 1]
        assert (await documents.get_version(document.id, "U1", 2)).content == "v2"

    @pytest.mark.asyncio
    async def test_missing_version(self, documents):
        document = await documents.create_document("Greeting", "v1", "U1")
        with pytest.raises(NotFoundError):
            await documents.get_version(document.id, "U1", 9)


class TestTagsAndDeletion:
    @pytest.mark.asyncio
    async def test_add_and_remove_tag(self, documents):
        document = await documents.create_document("Greeting", "Hello", "U1")

        tagged = await documents.add_tag(document.id, "U1", "intro")
        assert tagged.tags == ["intro"]
        with pytest.raises(ValidationError):
            await documents.add_tag(document.id, "U1", "intro")

        untagged = await documents.remove_tag(document.id, "U1", "intro")
        assert untagged.tags == []
        with pytest.raises(ValidationError):
            await documents.remove_tag(document.id, "U1", "intro")

    @pytest.mark.asyncio
    async def test_delete_removes_versions(self, documents, store):
        document = await documents.create_document("Greeting", "Hello", "U1")
        await documents.create_version(document.id, "U1", "Hello again")

        await documents.delete_document(document.id, "U1")

        assert await store.find_by_id(document.id) is None
        assert await store.list_versions(document.id) == []

    @pytest.mark.asyncio
    async def test_only_owner_may_delete(self, documents):
        document = await documents.create_document("Greeting", "Hello", "U1")
        with pytest.raises(PermissionDeniedError):
            await documents.delete_document(document.id, "U2")


class TestEmbeddings:
    @pytest.mark.asyncio
    async def test_regenerate_surfaces_provider_failure(self, documents, embedder):
        document = await documents.create_document("Greeting", "Hello", "U1")
        embedder.fail = True
        documents.embedding_cache.clear()

        with pytest.raises(EmbeddingError):
            await documents.regenerate_embedding(document.id, "U1")

    @pytest.mark.asyncio
    async def test_regenerate_after_failed_refresh(self, documents, embedder):
        embedder.fail = True
        document = await documents.create_document("Greeting", "Hello", "U1")
        embedder.fail = False

        refreshed = await documents.regenerate_embedding(document.id, "U1")

        assert refreshed.embedding == [0.0, 0.0, 1.0]

    @pytest.mark.asyncio
    async def test_slow_refresh_does_not_overwrite_newer_content(self, store, sequencer):
        embedder = HeldEmbeddingProvider(
            "A content", vectors={"A content": [1.0, 0.0], "B content": [0.0, 1.0]})
        documents = DocumentService(store, sequencer, EmbeddingCache(embedder))
        document = await documents.create_document("Greeting", "start", "U1")

        first = asyncio.create_task(
            documents.update_document(document.id, "U1", content="A content"))
        await embedder.reached.wait()
        await documents.update_document(document.id, "U1", content="B content")
        embedder.release.set()
        returned = await first

        stored = await store.find_by_id(document.id)
        assert stored.content == "B content"
        assert stored.current_version == 3
        assert stored.embedding == [0.0, 1.0]
        assert returned.content == "B content"

    @pytest.mark.asyncio
    async def test_embedding_for_superseded_version_is_discarded(self, documents, store):
        document = await documents.create_document("Greeting", "v1", "U1")
        await documents.create_version(document.id, "U1", "v2")

        assert await store.set_embedding(document.id, 1, [1.0, 0.0]) is None
        assert (await store.find_by_id(document.id)).embedding == [0.0, 0.0, 1.0]


class TestSharing:
    @pytest.mark.asyncio
    async def test_collaborator_can_read_and_version(self, documents):
        document = await documents.create_document("Plan", "draft", "U1")

        shared = await documents.share_document(document.id, "U1", "U2")

        assert shared.collaborators == ["U2"]
        assert (await documents.get_document(document.id, "U2")).id == document.id
        version = await documents.create_version(document.id, "U2", "draft two", "edits")
        assert version.author_id == "U2"
        _, versions = await documents.list_versions(document.id, "U2")
        assert [v.version_number for v in versions] == [2, 1]

    @pytest.mark.asyncio
    async def test_collaborator_cannot_manage_document(self, documents):
        document = await documents.create_document("Plan", "draft", "U1")
        await documents.share_document(document.id, "U1", "U2")

        with pytest.raises(PermissionDeniedError):
            await documents.update_document(document.id, "U2", title="Mine now")
        with pytest.raises(PermissionDeniedError):
            await documents.share_document(document.id, "U2", "U3")
        with pytest.raises(PermissionDeniedError):
            await documents.delete_document(document.id, "U2")

    @pytest.mark.asyncio
    async def test_strangers_cannot_see_versions(self, documents):
        document = await documents.create_document("Plan", "draft", "U1", is_public=True)
        with pytest.raises(PermissionDeniedError):
            await documents.list_versions(document.id, "U3")
        with pytest.raises(PermissionDeniedError):
            await documents.create_version(document.id, "U3", "vandalism")

    @pytest.mark.asyncio
    async def test_shared_documents_are_listed(self, documents):
        document = await documents.create_document("Plan", "draft", "U1")
        await documents.share_document(document.id, "U1", "U2")

        listed, total, _ = await documents.list_documents("U2")

        assert [d.id for d in listed] == [document.id]
        assert total == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", ["", "U1", "U2"])
    async def test_invalid_share_targets(self, documents, user_id):
        document = await documents.create_document("Plan", "draft", "U1")
        await documents.share_document(document.id, "U1", "U2")

        with pytest.raises(ValidationError):
            await documents.share_document(document.id, "U1", user_id)


class TestActivity:
    @pytest.mark.asyncio
    async def test_lifecycle_is_recorded(self, documents, store):
        document = await documents.create_document("Plan", "draft", "U1")
        await documents.get_document(document.id, "U1")
        await documents.update_document(document.id, "U1", title="Plan B", content="redraft")
        await documents.create_version(document.id, "U1", "final", "ship it")
        await documents.share_document(document.id, "U1", "U2")
        await documents.delete_document(document.id, "U1")

        entries = await store.list_activities("U1")

        assert [a.action for a in entries] == [
            ActivityAction.DELETE,
            ActivityAction.SHARE,
            ActivityAction.VERSION,
            ActivityAction.UPDATE,
            ActivityAction.VIEW,
            ActivityAction.CREATE,
        ]
        assert all(a.document_id == document.id for a in entries)
        assert entries[1].details == {"shared_with": "U2"}
        assert entries[2].details == {"version": 3, "change_note": "ship it"}
        assert entries[3].details == {"fields": ["content", "title"], "version": 2}

    @pytest.mark.asyncio
    async def test_activity_failure_does_not_fail_write(self, documents, store, monkeypatch):
        async def broken(activity):
            raise DatabaseError("activity table unavailable")

        monkeypatch.setattr(store, "record_activity", broken)

        document = await documents.create_document("Plan", "draft", "U1")

        assert (await store.find_by_id(document.id)).title == "Plan"
