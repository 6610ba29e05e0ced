"""
Integration tests for API endpoints
"""
import pytest
from unittest.mock import patch

from fastapi.testclient import TestClient

from notelink.main import app
from notelink.services.llm import QuizGenerationError


def create_note(client, payload, **overrides):
    response = client.post("/api/notes", json={**payload, **overrides})
    assert response.status_code == 201, response.text
    return response.json()["id"]


def create_community(client, name="生物学ゼミ", join_code="secret-code"):
    response = client.post("/api/communities", json={"name": name, "join_code": join_code})
    assert response.status_code == 201, response.text
    return response.json()["id"]


class TestHealthEndpoints:
    def test_health_check(self, db, client):
        """Test health check endpoint"""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert data["checks"]["ai"]["status"] == "disabled"
        assert data["checks"]["cache"]["backend"] == "memory"
        assert data["table_counts"]["user"] == 1

    def test_api_health(self, db, client):
        response = client.get("/api/health")
        assert response.json() == {"ok": True, "db": True}
        assert response.headers["X-Request-ID"]

    def test_request_id_is_echoed(self, db, client):
        response = client.get("/api/me", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_metrics_endpoint(self, db, client):
        """Test metrics endpoint"""
        client.get("/api/health")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "http_requests_total" in response.text

    @pytest.mark.parametrize("show_detail", [True, False])
    def test_unhandled_error_detail(self, db, show_detail):
        client = TestClient(app, raise_server_exceptions=False)
        with patch("notelink.main.SHOW_ERROR_DETAIL", show_detail), \
                patch("notelink.main.health_checker.check_database", side_effect=RuntimeError("db path /srv/notelink.db")):
            response = client.get("/api/health")

        assert response.status_code == 500
        assert response.json()["message"] == "server error"
        assert ("detail" in response.json()) is show_detail
        assert ("/srv/notelink.db" in response.text) is show_detail


class TestNoteEndpoints:
    def test_create_and_read_note(self, client, note_payload):
        """Test note creation renders Markdown"""
        note_id = create_note(client, note_payload)

        data = client.get(f"/api/notes/{note_id}").json()
        assert data["title"] == "光合成"
        assert data["visibility"] == "public"
        assert data["community_id"] is None
        assert data["body_md"].startswith("# 光合成")
        assert "- 授業名：生物学" in data["body_md"]

    def test_create_note_requires_login(self, make_client, note_payload):
        response = make_client().post("/api/notes", json=note_payload)
        assert response.status_code == 401

    @pytest.mark.parametrize("field", ["title", "body_raw", "course_name", "university_name"])
    def test_create_note_missing_fields(self, client, note_payload, field):
        response = client.post("/api/notes", json={**note_payload, field: "  "})
        assert response.status_code == 400

    def test_numeric_lecture_no(self, client, note_payload):
        note_id = create_note(client, note_payload, lecture_no=3)
        assert client.get(f"/api/notes/{note_id}").json()["lecture_no"] == "3"

    def test_preview(self, client, note_payload):
        response = client.post("/api/notes/preview", json=note_payload)
        assert response.status_code == 200
        assert "## 本文" in response.json()["body_md"]

    def test_public_listing(self, client, make_client, note_payload):
        create_note(client, note_payload)
        create_note(client, note_payload, title="秘密", visibility="private")
        create_note(client, note_payload, course_name="化学", title="酸と塩基")

        anonymous = make_client()
        titles = [n["title"] for n in anonymous.get("/api/notes", params={"university_name": "東京大学"}).json()]
        assert sorted(titles) == ["光合成", "酸と塩基"]

        filtered = anonymous.get("/api/notes", params={"university_name": "東京大学", "course": "化学"}).json()
        assert [n["title"] for n in filtered] == ["酸と塩基"]

        assert anonymous.get("/api/notes", params={"university_name": "京都大学"}).json() == []
        assert anonymous.get("/api/notes").json() == []

    def test_listing_cache_is_invalidated(self, client, make_client, note_payload):
        anonymous = make_client()
        params = {"university_name": "東京大学"}
        assert anonymous.get("/api/notes", params=params).json() == []

        create_note(client, note_payload)
        assert len(anonymous.get("/api/notes", params=params).json()) == 1

    def test_private_note_access(self, client, make_client, note_payload):
        note_id = create_note(client, note_payload, visibility="private")

        assert make_client().get(f"/api/notes/{note_id}").status_code == 401
        assert make_client("bob").get(f"/api/notes/{note_id}").status_code == 403
        assert client.get(f"/api/notes/{note_id}").status_code == 200

    def test_missing_note(self, client):
        assert client.get("/api/notes/999").status_code == 404

    def test_update_note(self, client, make_client, note_payload):
        note_id = create_note(client, note_payload)

        response = client.patch(f"/api/notes/{note_id}", json={**note_payload, "title": "光合成（改）"})
        assert response.status_code == 200
        data = client.get(f"/api/notes/{note_id}").json()
        assert data["title"] == "光合成（改）"
        assert data["body_md"].startswith("# 光合成（改）")

        other = make_client("bob")
        assert other.patch(f"/api/notes/{note_id}", json=note_payload).status_code == 403

    def test_change_visibility(self, client, note_payload):
        note_id = create_note(client, note_payload)

        response = client.patch(f"/api/notes/{note_id}/visibility", json={"visibility": "private"})
        assert response.json() == {"ok": True, "visibility": "private"}

        response = client.patch(f"/api/notes/{note_id}/visibility", json={"visibility": "anything"})
        assert response.json()["visibility"] == "public"

    def test_my_notes_and_delete(self, client, make_client, note_payload):
        note_id = create_note(client, note_payload)
        client.post(f"/api/notes/{note_id}/quizzes/generate")

        assert [n["id"] for n in client.get("/api/my-notes").json()] == [note_id]
        assert make_client("bob").delete(f"/api/notes/{note_id}").status_code == 403

        assert client.delete(f"/api/notes/{note_id}").json() == {"ok": True}
        assert client.get("/api/my-notes").json() == []
        assert client.get(f"/api/notes/{note_id}").status_code == 404


class TestCommunityEndpoints:
    def test_create_join_and_list(self, client, make_client):
        community_id = create_community(client)

        mine = client.get("/api/communities/mine").json()
        assert [(c["id"], c["role"]) for c in mine] == [(community_id, "admin")]

        bob = make_client("bob")
        assert [c["name"] for c in bob.get("/api/communities", params={"q": "生物"}).json()] == ["生物学ゼミ"]
        assert bob.get("/api/communities", params={"q": "物理"}).json() == []

        bad = bob.post("/api/communities/join", json={"community_id": community_id, "join_code": "wrong"})
        assert bad.status_code == 403

        good = bob.post("/api/communities/join", json={"community_id": community_id, "join_code": "secret-code"})
        assert good.json() == {"ok": True, "id": community_id, "name": "生物学ゼミ"}
        # joining twice is harmless
        again = bob.post("/api/communities/join", json={"community_id": community_id, "join_code": "secret-code"})
        assert again.status_code == 200
        assert [c["role"] for c in bob.get("/api/communities/mine").json()] == ["member"]

    def test_join_unknown_community(self, client):
        response = client.post("/api/communities/join", json={"community_id": 999, "join_code": "x"})
        assert response.status_code == 404

    def test_community_notes_are_members_only(self, client, make_client, note_payload):
        community_id = create_community(client)
        note_id = create_note(client, note_payload, university_name="", community_id=community_id)

        bob = make_client("bob")
        assert bob.get(f"/api/notes/{note_id}").status_code == 403
        assert bob.get("/api/community-notes").json() == []
        assert make_client().get(f"/api/notes/{note_id}").status_code == 401

        # never listed publicly, even under the placeholder university
        assert bob.get("/api/notes", params={"university_name": "（コミュ）"}).json() == []

        bob.post("/api/communities/join", json={"community_id": community_id, "join_code": "secret-code"})
        assert bob.get(f"/api/notes/{note_id}").status_code == 200
        listed = bob.get("/api/community-notes").json()
        assert [(n["id"], n["community_name"]) for n in listed] == [(note_id, "生物学ゼミ")]

    def test_non_member_cannot_post_to_community(self, client, make_client, note_payload):
        community_id = create_community(client)
        response = make_client("bob").post("/api/notes", json={**note_payload, "community_id": community_id})
        assert response.status_code == 403

    def test_community_note_visibility_is_fixed(self, client, note_payload):
        community_id = create_community(client)
        note_id = create_note(client, note_payload, community_id=community_id)
        response = client.patch(f"/api/notes/{note_id}/visibility", json={"visibility": "private"})
        assert response.status_code == 400

    def test_leave(self, client, make_client):
        community_id = create_community(client)
        assert client.post(f"/api/communities/{community_id}/leave").status_code == 400

        bob = make_client("bob")
        assert bob.post(f"/api/communities/{community_id}/leave").status_code == 403
        bob.post("/api/communities/join", json={"community_id": community_id, "join_code": "secret-code"})
        assert bob.post(f"/api/communities/{community_id}/leave").json() == {"ok": True}
        assert bob.get("/api/communities/mine").json() == []

    def test_delete_community(self, client, make_client, note_payload):
        community_id = create_community(client)
        note_id = create_note(client, note_payload, community_id=community_id)

        bob = make_client("bob")
        bob.post("/api/communities/join", json={"community_id": community_id, "join_code": "secret-code"})
        assert bob.delete(f"/api/communities/{community_id}").status_code == 403

        assert client.delete(f"/api/communities/{community_id}").json() == {"ok": True, "deleted": community_id}
        assert client.get(f"/api/notes/{note_id}").status_code == 404
        assert bob.get("/api/communities/mine").json() == []


class TestQuizEndpoints:
    def test_rule_generation(self, client, note_payload):
        """Rule engine output is stored with its source line"""
        note_id = create_note(client, note_payload)

        response = client.post(f"/api/notes/{note_id}/quizzes/generate", json={"source": "rule"})
        assert response.json() == {"ok": True, "inserted": 2, "source": "rule", "fallback": False}

        quizzes = client.get(f"/api/notes/{note_id}/quizzes").json()
        assert [q["question"] for q in quizzes] == [
            "【第1章】「光合成」とは何か？",
            "【第1章】光合成とは、（　　　）である",
        ]
        assert {q["type"] for q in quizzes} == {"fill"}
        assert {q["source_line"] for q in quizzes} == {"2"}

    def test_replace_and_append(self, client, note_payload):
        note_id = create_note(client, note_payload)
        url = f"/api/notes/{note_id}/quizzes/generate"

        client.post(url)
        client.post(url, json={"mode": "replace"})
        assert len(client.get(f"/api/notes/{note_id}/quizzes").json()) == 2

        client.post(url, json={"mode": "append"})
        assert len(client.get(f"/api/notes/{note_id}/quizzes").json()) == 4

    def test_limit_override(self, client, note_payload):
        note_id = create_note(client, note_payload)
        response = client.post(f"/api/notes/{note_id}/quizzes/generate", json={"limit": 1})
        assert response.json()["inserted"] == 1

    @pytest.mark.parametrize("body", [{"mode": "merge"}, {"source": "magic"}, {"limit": 0}, {"limit": 1000}])
    def test_invalid_request(self, client, note_payload, body):
        note_id = create_note(client, note_payload)
        response = client.post(f"/api/notes/{note_id}/quizzes/generate", json=body)
        assert response.status_code == 400

    def test_only_author_generates(self, client, make_client, note_payload):
        note_id = create_note(client, note_payload)
        assert make_client("bob").post(f"/api/notes/{note_id}/quizzes/generate").status_code == 403
        assert make_client().post(f"/api/notes/{note_id}/quizzes/generate").status_code == 401
        assert client.post("/api/notes/999/quizzes/generate").status_code == 404

    def test_ai_without_key_falls_back_to_rules(self, client, note_payload):
        note_id = create_note(client, note_payload)
        response = client.post(f"/api/notes/{note_id}/quizzes/generate", json={"source": "ai"})
        assert response.json() == {"ok": True, "inserted": 2, "source": "rule", "fallback": True}

    def test_ai_generation(self, client, note_payload):
        note_id = create_note(client, note_payload)
        ai_items = [
            {"type": "term", "question": "光合成とは？", "answer": "光で栄養を作る過程", "source_line": "光合成とは"},
            {"type": "tf", "question": "光合成は夜に行われる", "answer": "誤り", "source_line": None},
        ]
        with patch("notelink.routers.quizzes.generate_quizzes_with_ai", return_value=ai_items) as mock_ai:
            response = client.post(f"/api/notes/{note_id}/quizzes/generate", json={"source": "ai"})

        mock_ai.assert_called_once_with("光合成", "生物学", note_payload["body_raw"])
        assert response.json() == {"ok": True, "inserted": 2, "source": "ai", "fallback": False}
        quizzes = client.get(f"/api/notes/{note_id}/quizzes").json()
        assert [(q["type"], q["source_line"]) for q in quizzes] == [("term", "光合成とは"), ("tf", None)]

    def test_ai_error_falls_back(self, client, note_payload):
        note_id = create_note(client, note_payload)
        with patch("notelink.routers.quizzes.generate_quizzes_with_ai", side_effect=QuizGenerationError("boom")):
            response = client.post(f"/api/notes/{note_id}/quizzes/generate", json={"source": "ai"})
        assert response.json()["fallback"] is True
        assert response.json()["source"] == "rule"

    def test_quizzes_follow_note_visibility(self, client, make_client, note_payload):
        note_id = create_note(client, note_payload, visibility="private")
        client.post(f"/api/notes/{note_id}/quizzes/generate")
        assert make_client("bob").get(f"/api/notes/{note_id}/quizzes").status_code == 403
        assert len(client.get(f"/api/notes/{note_id}/quizzes").json()) == 2

    def test_update_quiz(self, client, make_client, note_payload):
        note_id = create_note(client, note_payload)
        client.post(f"/api/notes/{note_id}/quizzes/generate")
        quiz = client.get(f"/api/notes/{note_id}/quizzes").json()[0]

        response = client.patch(f"/api/quizzes/{quiz['id']}", json={"question": " 新しい問題 ", "answer": "答え", "type": ""})
        assert response.json() == {"ok": True}
        updated = client.get(f"/api/notes/{note_id}/quizzes").json()[0]
        assert (updated["question"], updated["answer"], updated["type"]) == ("新しい問題", "答え", "fill")

        assert client.patch(f"/api/quizzes/{quiz['id']}", json={"question": "  "}).status_code == 400
        assert make_client("bob").patch(f"/api/quizzes/{quiz['id']}", json={"question": "x"}).status_code == 403
        assert client.patch("/api/quizzes/999", json={"question": "x"}).status_code == 404

    def test_delete_quiz(self, client, make_client, note_payload):
        note_id = create_note(client, note_payload)
        client.post(f"/api/notes/{note_id}/quizzes/generate")
        quiz_id = client.get(f"/api/notes/{note_id}/quizzes").json()[0]["id"]

        assert make_client("bob").delete(f"/api/quizzes/{quiz_id}").status_code == 403
        assert client.delete(f"/api/quizzes/{quiz_id}").json() == {"ok": True}
        assert len(client.get(f"/api/notes/{note_id}/quizzes").json()) == 1


class TestAccountEndpoints:
    def test_delete_account(self, client, make_client, note_payload):
        note_id = create_note(client, note_payload)
        community_id = create_community(client)

        assert client.delete("/api/account").json() == {"ok": True}
        assert client.get("/api/me").json() == {"loggedIn": False}

        bob = make_client("bob")
        assert bob.get(f"/api/notes/{note_id}").status_code == 404
        login = bob.post("/api/login", json={"username": "alice", "password": "password123"})
        assert login.status_code == 401
        # the community itself survives
        assert [c["id"] for c in bob.get("/api/communities").json()] == [community_id]
