"""HTTP-level tests for the note and instance endpoints."""
import pytest
from fastapi.testclient import TestClient

from conftest import make_note
from notesearch.common.constants import Visibility
from notesearch.db.session import SessionLocal
from notesearch.main import app
from notesearch.models import NoteEmbedding
from notesearch.services.auth_service import create_access_token
from notesearch.services.semantic_index_service import SemanticIndexService
from notesearch.services.semantic_reindex_service import SemanticReindexService


@pytest.fixture
def api(db, provider):
    with TestClient(app) as client:
        app.state.embedding_provider = provider
        app.state.semantic_indexer = SemanticIndexService(provider, SessionLocal)
        app.state.semantic_reindexer = SemanticReindexService(provider, SessionLocal)
        yield client


def auth(user):
    return {"Authorization": f"Bearer {create_access_token(user.email)}"}


def wait_for_indexing(api):
    api.portal.call(app.state.semantic_indexer.wait_idle)


def embedding_of(db, note_id):
    db.expire_all()
    return db.query(NoteEmbedding).filter(NoteEmbedding.note_id == note_id).first()


class TestNoteEndpoints:

    def test_created_note_becomes_searchable(self, api, db, alice, fake_client):
        response = api.post("/notes", json={"title": "Standup", "content": "ship the release friday"}, headers=auth(alice))
        assert response.status_code == 201
        note_id = response.json()["data"]["id"]

        wait_for_indexing(api)
        assert embedding_of(db, note_id) is not None

        response = api.post("/notes/semantic-search", json={"query": "ship the release friday"}, headers=auth(alice))

        assert response.status_code == 200
        body = response.json()
        assert body["success"]
        assert [note["id"] for note in body["data"]["notes"]] == [note_id]
        assert body["data"]["next_page_token"] == ""

    def test_only_content_changes_re_embed(self, api, db, alice, fake_client):
        note_id = api.post("/notes", json={"title": "Draft", "content": "first draft"}, headers=auth(alice)).json()["data"]["id"]
        wait_for_indexing(api)

        api.patch(f"/notes/{note_id}", json={"title": "Renamed"}, headers=auth(alice))
        wait_for_indexing(api)
        assert fake_client.embed_calls == 1

        api.patch(f"/notes/{note_id}", json={"content": "second draft"}, headers=auth(alice))
        wait_for_indexing(api)
        assert fake_client.embed_calls == 2

    def test_deleted_note_loses_embedding(self, api, db, alice):
        note_id = api.post("/notes", json={"title": "Temp", "content": "temporary"}, headers=auth(alice)).json()["data"]["id"]
        wait_for_indexing(api)

        response = api.delete(f"/notes/{note_id}", headers=auth(alice))
        wait_for_indexing(api)

        assert response.status_code == 200
        assert embedding_of(db, note_id) is None

    def test_anonymous_search_sees_public_notes_only(self, api, db, alice, fake_client):
        public = make_note(db, alice, "roadmap", visibility=Visibility.PUBLIC)
        make_note(db, alice, "roadmap")
        api.portal.call(_index_all, db, fake_client)

        response = api.post("/notes/semantic-search", json={"query": "roadmap"})

        assert response.status_code == 200
        assert [note["id"] for note in response.json()["data"]["notes"]] == [public.id]

    def test_blank_query_is_bad_request(self, api, alice):
        response = api.post("/notes/semantic-search", json={"query": "  "}, headers=auth(alice))

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_bad_page_token_is_bad_request(self, api, alice):
        response = api.post(
            "/notes/semantic-search", json={"query": "anything", "page_token": "???"}, headers=auth(alice)
        )

        assert response.status_code == 400

    def test_unconfigured_provider_is_precondition_failed(self, api, alice, unconfigured_provider):
        app.state.embedding_provider = unconfigured_provider

        response = api.post("/notes/semantic-search", json={"query": "anything"}, headers=auth(alice))

        assert response.status_code == 412

    def test_invalid_token_is_unauthorized(self, api):
        response = api.post(
            "/notes/semantic-search", json={"query": "anything"}, headers={"Authorization": "Bearer nope"}
        )

        assert response.status_code == 401

    def test_private_note_of_other_user_is_not_found(self, api, db, alice, bob):
        note = make_note(db, bob, "bob's diary")

        assert api.get(f"/notes/{note.id}", headers=auth(alice)).status_code == 404
        assert api.get(f"/notes/{note.id}", headers=auth(bob)).status_code == 200

    def test_keyword_search_lists_visible_notes(self, api, db, alice, bob):
        own = make_note(db, alice, "quarterly budget")
        make_note(db, bob, "quarterly budget")

        response = api.post("/notes/search", json={"search": "budget"}, headers=auth(alice))

        assert response.status_code == 200
        assert [note["id"] for note in response.json()["data"]["data"]] == [own.id]


async def _index_all(db, client):
    from notesearch.services.semantic_index_service import refresh_note_embedding
    from notesearch.models import Note

    for note in db.query(Note).all():
        await refresh_note_embedding(db, client, note.id, note.content)


class TestInstanceEndpoints:

    def test_requires_admin(self, api, alice):
        assert api.get("/instance/settings/ai").status_code == 401
        assert api.get("/instance/settings/ai", headers=auth(alice)).status_code == 403
        assert api.post("/instance/semantic-reindex", headers=auth(alice)).status_code == 403

    def test_update_setting_hides_api_key(self, api, admin):
        response = api.patch(
            "/instance/settings/ai",
            json={"openai_api_key": "sk-admin-secret", "semantic_embedding_concurrency": 2},
            headers=auth(admin),
        )

        assert response.status_code == 200
        assert response.json()["data"]["openai_api_key_set"] is True
        assert "sk-admin-secret" not in response.text
        assert app.state.semantic_indexer.concurrency_limit == 2

        response = api.get("/instance/settings/ai", headers=auth(admin))
        assert response.json()["data"]["semantic_embedding_concurrency"] == 2
        assert "sk-admin-secret" not in response.text

    def test_negative_setting_is_bad_request(self, api, admin):
        response = api.patch(
            "/instance/settings/ai", json={"openai_embedding_max_retry": -1}, headers=auth(admin)
        )

        assert response.status_code == 400

    def test_reindex_lifecycle(self, api, db, alice, admin, fake_client):
        make_note(db, alice, "first")
        make_note(db, alice, "second", is_archived=True)
        fake_client.delay = 0.2

        started = api.post("/instance/semantic-reindex", headers=auth(admin))
        conflict = api.post("/instance/semantic-reindex", headers=auth(admin))
        api.portal.call(app.state.semantic_reindexer.wait)

        assert started.status_code == 202
        assert conflict.status_code == 409

        state = api.get("/instance/semantic-reindex", headers=auth(admin)).json()["data"]
        assert state["running"] is False
        assert state["total"] == 2
        assert state["processed"] == 2
        assert state["model"] == "fake-embedding"
