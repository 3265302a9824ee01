"""HTTP tests against the FastAPI application."""

import pytest
from fastapi.testclient import TestClient

from knowledge_hub.main import create_app

OWNER = {"X-User-Id": "U1"}
OTHER = {"X-User-Id": "U2"}


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


def create(client, **overrides):
    body = {"title": "Greeting", "content": "Hello", "tags": ["intro"]}
    body.update(overrides)
    response = client.post("/api/documents", json=body, headers=OWNER)
    assert response.status_code == 201
    return response.json()


class TestDocumentRoutes:
    def test_requires_user_header(self, client):
        assert client.get("/api/documents").status_code == 401

    def test_create_and_fetch(self, client):
        created = create(client)

        assert created["current_version"] == 1
        assert created["has_embedding"] is True
        assert "embedding" not in created

        fetched = client.get(f"/api/documents/{created['id']}", headers=OWNER)
        assert fetched.status_code == 200
        assert fetched.json()["title"] == "Greeting"

    def test_private_document_is_404_for_others(self, client):
        created = create(client)
        response = client.get(f"/api/documents/{created['id']}", headers=OTHER)
        assert response.status_code == 404

    def test_update_by_non_owner_is_403(self, client):
        created = create(client, is_public=True)
        response = client.put(
            f"/api/documents/{created['id']}", json={"title": "x"}, headers=OTHER)
        assert response.status_code == 403

    def test_versions_flow(self, client):
        created = create(client)
        doc_id = created["id"]

        updated = client.put(
            f"/api/documents/{doc_id}", json={"content": "Hello world"}, headers=OWNER)
        assert updated.json()["current_version"] == 2

        version = client.post(
            f"/api/documents/{doc_id}/version",
            json={"content": "Hello again", "change_note": "third"},
            headers=OWNER,
        )
        assert version.status_code == 201
        assert version.json()["version_number"] == 3

        history = client.get(f"/api/documents/{doc_id}/versions", headers=OWNER).json()
        assert [v["version_number"] for v in history["versions"]] == [3, 2, 1]

        first = client.get(f"/api/documents/{doc_id}/version/1", headers=OWNER)
        assert first.json()["content"] == "Hello"
        assert client.get(f"/api/documents/{doc_id}/version/9", headers=OWNER).status_code == 404

    def test_list_and_public_list(self, client):
        create(client, title="private")
        create(client, title="public", is_public=True)

        mine = client.get("/api/documents", headers=OWNER).json()
        public = client.get("/api/documents/public").json()

        assert mine["total"] == 2
        assert [d["title"] for d in public["documents"]] == ["public"]

    def test_tags(self, client):
        doc_id = create(client)["id"]

        duplicate = client.post(f"/api/documents/{doc_id}/tag", json={"tag": "intro"}, headers=OWNER)
        assert duplicate.status_code == 400

        added = client.post(f"/api/documents/{doc_id}/tag", json={"tag": "new"}, headers=OWNER)
        assert added.json()["tags"] == ["intro", "new"]

        removed = client.delete(f"/api/documents/{doc_id}/tag/intro", headers=OWNER)
        assert removed.json()["tags"] == ["new"]

    def test_delete(self, client):
        doc_id = create(client)["id"]
        assert client.delete(f"/api/documents/{doc_id}", headers=OWNER).status_code == 200
        assert client.get(f"/api/documents/{doc_id}", headers=OWNER).status_code == 404

    def test_share_grants_collaborator_access(self, client):
        doc_id = create(client)["id"]

        shared = client.post(
            f"/api/documents/{doc_id}/share", json={"user_id": "U2"}, headers=OWNER)
        assert shared.status_code == 200
        assert shared.json()["collaborators"] == ["U2"]

        assert client.get(f"/api/documents/{doc_id}", headers=OTHER).status_code == 200
        version = client.post(
            f"/api/documents/{doc_id}/version", json={"content": "Hello U2"}, headers=OTHER)
        assert version.status_code == 201

        again = client.post(
            f"/api/documents/{doc_id}/share", json={"user_id": "U2"}, headers=OWNER)
        assert again.status_code == 400
        by_collaborator = client.post(
            f"/api/documents/{doc_id}/share", json={"user_id": "U3"}, headers=OTHER)
        assert by_collaborator.status_code == 403

    def test_embedding_failure_is_502(self, client, embedder, container):
        doc_id = create(client)["id"]
        embedder.fail = True
        container.embedding_cache.clear()

        response = client.post(f"/api/documents/{doc_id}/embed", headers=OWNER)

        assert response.status_code == 502


class TestQuestionRoutes:
    def test_ask(self, client, llm):
        create(client, content="retrieval augmented generation")
        llm.reply = "An answer."

        response = client.post("/api/qa/ask", json={"question": "retrieval?"}, headers=OWNER)

        assert response.status_code == 200
        body = response.json()
        assert body["answer"] == "An answer."
        assert len(body["sources"]) == 1

    def test_question_history(self, client):
        client.post("/api/qa/ask", json={"question": "first?"}, headers=OWNER)
        client.post("/api/qa/ask", json={"question": "second?"}, headers=OWNER)

        body = client.get("/api/qa/history", headers=OWNER).json()

        assert [a["details"]["question"] for a in body["activities"]] == ["second?", "first?"]
        assert all(a["action"] == "ask" for a in body["activities"])
        assert client.get("/api/qa/history", headers=OTHER).json()["activities"] == []

    def test_ask_generation_failure_is_502(self, client, llm):
        llm.fail = True
        response = client.post("/api/qa/ask", json={"question": "anything"}, headers=OWNER)
        assert response.status_code == 502

    def test_chat_session_flow(self, client):
        session_id = client.post("/api/qa/chat", headers=OWNER).json()["session_id"]

        turn = client.post(f"/api/qa/chat/{session_id}", json={"message": "hi"}, headers=OWNER)
        assert turn.status_code == 200

        closed = client.delete(f"/api/qa/chat/{session_id}", headers=OWNER)
        assert closed.json() == {"session_id": session_id, "closed": True}

        again = client.post(f"/api/qa/chat/{session_id}", json={"message": "hi"}, headers=OWNER)
        assert again.status_code == 404

    def test_close_unknown_session(self, client):
        assert client.delete("/api/qa/chat/unknown", headers=OWNER).status_code == 404
        response = client.delete("/api/qa/chat/unknown?missing_ok=true", headers=OWNER)
        assert response.json()["closed"] is False

    def test_feedback(self, client):
        ok = client.post(
            "/api/qa/feedback", json={"question": "q", "answer": "a", "rating": 5}, headers=OWNER)
        assert ok.status_code == 201

        bad = client.post(
            "/api/qa/feedback", json={"question": "q", "answer": "a", "rating": 9}, headers=OWNER)
        assert bad.status_code == 400

    def test_suggested_questions(self, client):
        response = client.get("/api/qa/suggested-questions", headers=OWNER)
        assert response.status_code == 200
        assert response.json()["questions"]


class TestSearchRoutes:
    def test_keyword_search(self, client):
        create(client, title="Vectors", content="similarity search")
        body = client.get("/api/search", params={"q": "similarity"}, headers=OWNER).json()
        assert body["mode"] == "keyword"
        assert [r["title"] for r in body["results"]] == ["Vectors"]

    def test_semantic_search(self, client, embedder):
        embedder.vectors["find me"] = [0.0, 0.0, 1.0]
        create(client, title="Match", content="anything")

        body = client.get(
            "/api/search/semantic", params={"q": "find me"}, headers=OWNER).json()

        assert body["mode"] == "semantic"
        assert body["results"][0]["title"] == "Match"
        assert body["results"][0]["score"] == pytest.approx(1.0)

    def test_search_history(self, client):
        client.get("/api/search", params={"q": "alpha"}, headers=OWNER)
        client.get("/api/search/semantic", params={"q": "beta"}, headers=OWNER)

        body = client.get("/api/search/history", headers=OWNER).json()

        assert [a["details"]["query"] for a in body["activities"]] == ["beta", "alpha"]
        assert body["activities"][1]["details"]["mode"] == "keyword"


class TestServiceRoutes:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["services"]["redis"]["status"] == "not_configured"
        assert body["services"]["openai"]["status"] == "not_configured"

    def test_ready(self, client):
        assert client.get("/ready").json()["ready"] is True

    def test_metrics(self, client):
        create(client)
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "hub_versions_created_total" in response.text
