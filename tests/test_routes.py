"""Endpoint tests for profiles, conversations, pathways and vector stores."""

import asyncio
import inspect
from unittest.mock import AsyncMock, Mock, patch

from fastapi.testclient import TestClient
from openai import OpenAIError

from config import settings
from models import ChatMessage, EducationPathway, Program, Recommendation, RecommendationFile
from routers import conversations

GENERATED = {
    "pathways": [{
        "title": "Data Science in Germany",
        "qualification_type": "Masters",
        "field_of_study": "Data Science",
        "budget_range_usd": {"min": 0, "max": 20000},
        "duration_months": {"min": 12, "max": 24},
    }],
    "response_id": "resp_pathways",
}


class TestHealth:
    def test_root(self, anonymous_client: TestClient) -> None:
        response = anonymous_client.get("/")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "vista-education-adviser"}


class TestProfileRoutes:
    def test_create_requires_user_id(self, test_client: TestClient) -> None:
        response = test_client.post("/api/profile/create", json={"profileData": {"vectorStoreId": "vs_1"}})

        assert response.status_code == 400
        assert response.json() == {"error": "User ID is required"}

    def test_create_for_other_user(self, test_client: TestClient) -> None:
        response = test_client.post("/api/profile/create", json={"userId": "user-2", "profileData": {"vectorStoreId": "vs_1"}})

        assert response.status_code == 403

    def test_create_requires_vector_store(self, test_client: TestClient) -> None:
        response = test_client.post("/api/profile/create", json={"userId": "user-1", "profileData": {"firstName": "Ada"}})

        assert response.status_code == 400

    def test_create_then_fetch(self, test_client: TestClient) -> None:
        created = test_client.post(
            "/api/profile/create",
            json={"userId": "user-1", "profileData": {"firstName": "Ada", "vectorStoreId": "vs_9"}},
        )
        fetched = test_client.get("/api/profile/user-1")

        assert created.status_code == 200
        assert fetched.json()["firstName"] == "Ada"
        assert fetched.json()["vectorStoreId"] == "vs_9"
        assert fetched.json()["education"] == []

    def test_fetch_other_users_profile(self, test_client: TestClient, profile) -> None:
        assert test_client.get("/api/profile/user-2").status_code == 403

    def test_fetch_missing_profile(self, test_client: TestClient) -> None:
        assert test_client.get("/api/profile/user-1").status_code == 404

    def test_update_without_fields(self, test_client: TestClient, profile) -> None:
        response = test_client.post("/api/profile/update", json={"vectorStoreId": "vs_other"})

        assert response.json() == {"message": "No fields to update"}

    def test_update_changes_only_given_fields(self, test_client: TestClient, profile) -> None:
        response = test_client.post("/api/profile/update", json={"nationality": "Nigerian"})

        body = response.json()
        assert body["success"] is True
        assert body["profile"]["nationality"] == "Nigerian"
        assert body["profile"]["firstName"] == "Ada"

    def test_delete_without_profile(self, test_client: TestClient) -> None:
        response = test_client.delete("/api/profile/delete")

        assert response.json() == {"success": True, "message": "No profile found to delete"}

    def test_delete_cleans_up_store(self, test_client: TestClient, use_openai_client, profile) -> None:
        use_openai_client(Mock())
        cleanup = AsyncMock(return_value={"success": True, "store_deleted": True, "deleted_files": [], "failed_files": []})
        with patch("vector_store.cleanup_store", new=cleanup), \
                patch("auth.delete_auth_user", new=AsyncMock(return_value=True)):
            response = test_client.delete("/api/profile/delete")

        assert response.json()["auth_user_deleted"] is True
        assert cleanup.await_args.args[1] == "vs_1"
        assert test_client.get("/api/profile/user-1").status_code == 404


class TestConversationRoutes:
    def test_crud_flow(self, test_client: TestClient) -> None:
        created = test_client.post("/api/conversations", json={"title": "Masters in Germany"}).json()

        renamed = test_client.patch(f"/api/conversations/{created['id']}", json={"title": "German masters"})
        listed = test_client.get("/api/conversations")

        assert renamed.json()["title"] == "German masters"
        assert [c["id"] for c in listed.json()] == [created["id"]]
        assert test_client.delete(f"/api/conversations/{created['id']}").json() == {"success": True}
        assert test_client.get(f"/api/conversations/{created['id']}").status_code == 404

    def test_messages(self, test_client: TestClient, db_session) -> None:
        conversation = test_client.post("/api/conversations", json={}).json()
        url = f"/api/conversations/{conversation['id']}/messages"

        test_client.post(url, json={"message_content": {"text": "Hi"}, "role": "user"})
        test_client.post(url, json={"message_content": {"text": "Hello!"}, "role": "assistant"})
        messages = test_client.get(url).json()

        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert db_session.query(ChatMessage).count() == 2

    def test_message_content_required(self, test_client: TestClient) -> None:
        conversation = test_client.post("/api/conversations", json={}).json()

        response = test_client.post(f"/api/conversations/{conversation['id']}/messages", json={"message_content": None})

        assert response.status_code == 400

    def test_other_users_conversation(self, test_client: TestClient, current_user) -> None:
        conversation = test_client.post("/api/conversations", json={}).json()
        current_user.id = "user-2"

        assert test_client.get(f"/api/conversations/{conversation['id']}").status_code == 404
        assert test_client.get(f"/api/conversations/{conversation['id']}/messages").status_code == 404

    def test_generate_title(self, anonymous_client: TestClient) -> None:
        with patch("routers.conversations.generate_conversation_title", return_value="Masters Options In Germany"):
            response = anonymous_client.post("/api/generate-title", json={"messageContent": "What masters can I do in Germany?"})

        assert response.json() == {"title": "Masters Options In Germany"}

    def test_generate_title_runs_off_the_event_loop(self) -> None:
        # Gemini generate_content blocks; a plain def route runs in the threadpool
        assert not inspect.iscoroutinefunction(conversations.generate_title)


class TestPathwayRoutes:
    def test_generate_requires_openai(self, test_client: TestClient, profile) -> None:
        response = test_client.post("/api/recommendations/pathways/generate", json={})

        assert response.status_code == 500

    def test_generate_requires_complete_profile(self, test_client: TestClient, use_openai_client) -> None:
        use_openai_client(Mock())

        response = test_client.post("/api/recommendations/pathways/generate", json={})

        assert response.status_code == 400
        assert response.json()["error"].startswith("Incomplete profile: missing profile")

    def test_generate_saves_pathways(self, test_client: TestClient, use_openai_client, profile, db_session) -> None:
        use_openai_client(Mock())
        with patch("planner.generate_education_pathways", new=AsyncMock(return_value=GENERATED)) as generate:
            response = test_client.post("/api/recommendations/pathways/generate", json={"previousResponseId": "resp_0"})

        body = response.json()
        assert response.status_code == 200
        assert body["responseId"] == "resp_pathways"
        assert body["pathways"][0]["title"] == "Data Science in Germany"
        assert generate.await_args.kwargs["previous_response_id"] == "resp_0"
        assert db_session.query(EducationPathway).count() == 1

    def test_generate_timeout(self, test_client: TestClient, use_openai_client, profile, monkeypatch) -> None:
        use_openai_client(Mock())
        monkeypatch.setattr(settings, "PATHWAY_TIMEOUT_SECONDS", 0.01)

        async def slow(*args, **kwargs):
            await asyncio.sleep(1)
            return GENERATED

        with patch("planner.generate_education_pathways", new=slow):
            response = test_client.post("/api/recommendations/pathways/generate", json={})

        assert response.status_code == 504

    def test_delete_with_feedback_hides_pathway(self, test_client: TestClient, use_openai_client, profile) -> None:
        use_openai_client(Mock())
        with patch("planner.generate_education_pathways", new=AsyncMock(return_value=GENERATED)):
            pathway_id = test_client.post("/api/recommendations/pathways/generate", json={}).json()["pathways"][0]["id"]

        deleted = test_client.request(
            "DELETE", f"/api/recommendations/pathways/{pathway_id}", json={"feedback": {"reason": "Too long"}},
        )

        assert deleted.json() == {"success": True}
        assert test_client.get("/api/recommendations/pathways").json() == {"pathways": []}
        assert test_client.get(f"/api/recommendations/pathways/{pathway_id}/programs").status_code == 404

    def test_rerun_requires_ids(self, test_client: TestClient) -> None:
        response = test_client.post("/api/recommendations/programs/rerun", json={"previousResponseId": "resp_1"})

        assert response.status_code == 400


class TestRecommendationRoutes:
    def test_favorite_toggle_and_filter(self, test_client: TestClient, recommendation) -> None:
        toggled = test_client.post("/api/recommendations/rec1/favorite")
        favorites = test_client.get("/api/recommendations", params={"favorites_only": True})

        assert toggled.json() == {"success": True, "is_favorite": False}
        assert favorites.json() == {"recommendations": []}

    def test_feedback(self, test_client: TestClient, recommendation) -> None:
        response = test_client.post("/api/recommendations/rec1/feedback", json={"reason": "Too expensive"})

        assert response.json() == {"success": True}
        listed = test_client.get("/api/recommendations").json()["recommendations"]
        assert listed[0]["feedback_negative"] is True
        assert listed[0]["feedback_reason"] == "Too expensive"

    def test_unknown_recommendation(self, test_client: TestClient) -> None:
        assert test_client.post("/api/recommendations/missing/favorite").status_code == 404


class TestVectorStoreRoutes:
    def test_batch_requires_file_ids(self, test_client: TestClient, use_openai_client) -> None:
        use_openai_client(Mock())

        response = test_client.post("/api/vector_stores/add_files_batch", json={"vectorStoreId": "vs_1", "fileIds": []})

        assert response.status_code == 400

    def test_batch_for_foreign_store(self, test_client: TestClient, use_openai_client, profile) -> None:
        use_openai_client(Mock())

        response = test_client.post("/api/vector_stores/add_files_batch", json={"vectorStoreId": "vs_other", "fileIds": ["file_1"]})

        assert response.status_code == 403

    def test_batch_for_own_store(self, test_client: TestClient, use_openai_client, profile) -> None:
        client = use_openai_client(Mock())
        client.vector_stores.file_batches.create = AsyncMock(return_value=Mock(id="vsfb_1", status="in_progress"))

        response = test_client.post("/api/vector_stores/add_files_batch", json={"vectorStoreId": "vs_1", "fileIds": ["file_1"]})

        assert response.json() == {"success": True, "batch_id": "vsfb_1", "status": "in_progress"}

    def test_requires_authentication(self, anonymous_client: TestClient) -> None:
        response = anonymous_client.get("/api/vector_stores/list_files", params={"vector_store_id": "vs_1"})

        assert response.status_code == 401

    def test_foreign_store_cannot_be_listed(self, test_client: TestClient, use_openai_client, profile) -> None:
        client = use_openai_client(Mock())
        client.vector_stores.files.list = AsyncMock()

        response = test_client.get("/api/vector_stores/list_files", params={"vector_store_id": "vs_other"})

        assert response.status_code == 403
        client.vector_stores.files.list.assert_not_awaited()

    def test_foreign_store_cannot_be_deleted(self, test_client: TestClient, use_openai_client, profile) -> None:
        client = use_openai_client(Mock())
        client.vector_stores.delete = AsyncMock()

        response = test_client.delete("/api/vector_stores/delete_store", params={"vector_store_id": "vs_other"})

        assert response.status_code == 403
        client.vector_stores.delete.assert_not_awaited()

    def test_store_guard_without_profile(self, test_client: TestClient, use_openai_client) -> None:
        use_openai_client(Mock())

        for response in (
            test_client.delete("/api/vector_stores/cleanup", params={"vector_store_id": "vs_1"}),
            test_client.delete("/api/vector_stores/delete_file", params={"file_id": "file_1", "vector_store_id": "vs_1"}),
            test_client.post("/api/vector_stores/add_file", json={"vectorStoreId": "vs_1", "fileId": "file_1"}),
        ):
            assert response.status_code == 403

    def test_own_store_files_listed(self, test_client: TestClient, use_openai_client, profile) -> None:
        client = use_openai_client(Mock())
        client.vector_stores.files.list = AsyncMock(return_value=Mock(data=[Mock(id="file_1")]))

        response = test_client.get("/api/vector_stores/list_files", params={"vector_store_id": "vs_1"})

        assert response.json() == {"vector_store_id": "vs_1", "file_ids": ["file_1"]}


def add_pathway(test_client: TestClient) -> str:
    with patch("planner.generate_education_pathways", new=AsyncMock(return_value=GENERATED)):
        return test_client.post("/api/recommendations/pathways/generate", json={}).json()["pathways"][0]["id"]


class TestGenerateMorePathways:
    def test_requires_existing_pathways(self, test_client: TestClient, use_openai_client, profile) -> None:
        use_openai_client(Mock())

        response = test_client.post("/api/recommendations/pathways/generate-more", json={})

        assert response.status_code == 400

    def test_passes_existing_pathways_and_feedback(self, test_client: TestClient, use_openai_client, profile) -> None:
        use_openai_client(Mock())
        deleted_id = add_pathway(test_client)
        test_client.request("DELETE", f"/api/recommendations/pathways/{deleted_id}", json={"feedback": {"reason": "Too long"}})
        add_pathway(test_client)

        request_feedback = {"pathwaySummary": "Law in Spain", "feedback": {"reason": "Wrong field"}}
        with patch("planner.generate_education_pathways", new=AsyncMock(return_value=GENERATED)) as generate:
            response = test_client.post("/api/recommendations/pathways/generate-more", json={"feedbackContext": [request_feedback]})

        assert response.status_code == 200
        assert len(response.json()["pathways"]) == 1
        kwargs = generate.await_args.kwargs
        assert [p["title"] for p in kwargs["existing_pathways"]] == ["Data Science in Germany"]
        assert kwargs["feedback_context"][0] == request_feedback
        assert kwargs["feedback_context"][1]["feedback"] == {"reason": "Too long"}
        assert len(test_client.get("/api/recommendations/pathways").json()["pathways"]) == 2


class TestResetPathways:
    def test_nothing_to_reset(self, test_client: TestClient) -> None:
        response = test_client.post("/api/recommendations/pathways/reset")

        assert response.json() == {"success": True, "deletedPathwaysCount": 0, "deletedProgramsCount": 0}

    def test_deletes_pathways_recommendations_and_files(self, test_client: TestClient, use_openai_client, recommendation, db_session) -> None:
        client = use_openai_client(Mock())
        client.vector_stores.files.delete = AsyncMock()
        client.files.delete = AsyncMock()
        pathway_id = add_pathway(test_client)
        test_client.request("DELETE", f"/api/recommendations/pathways/{add_pathway(test_client)}", json={})
        recommendation.pathway_id = pathway_id
        db_session.add(RecommendationFile(recommendation_id="rec1", file_id="file_rec1", file_name="rec1.json"))
        db_session.commit()

        response = test_client.post("/api/recommendations/pathways/reset")

        assert response.json() == {"success": True, "deletedPathwaysCount": 2, "deletedProgramsCount": 1}
        assert db_session.query(EducationPathway).count() == 0
        assert db_session.query(Recommendation).count() == 0
        assert db_session.query(RecommendationFile).count() == 0
        client.vector_stores.files.delete.assert_awaited_once_with(file_id="file_rec1", vector_store_id="vs_1")

    def test_recommendations_outside_pathways_survive(self, test_client: TestClient, use_openai_client, recommendation, db_session) -> None:
        use_openai_client(Mock())
        add_pathway(test_client)

        test_client.post("/api/recommendations/pathways/reset")

        assert db_session.query(Recommendation).count() == 1


class TestDeleteRecommendation:
    def test_removes_row_and_store_file(self, test_client: TestClient, use_openai_client, recommendation, db_session) -> None:
        client = use_openai_client(Mock())
        client.vector_stores.files.delete = AsyncMock()
        client.files.delete = AsyncMock()
        db_session.add(RecommendationFile(recommendation_id="rec1", file_id="file_rec1", file_name="rec1.json"))
        db_session.commit()

        response = test_client.delete("/api/recommendations/rec1")

        assert response.json() == {"success": True, "recommendation_id": "rec1"}
        assert db_session.query(Recommendation).count() == 0
        client.files.delete.assert_awaited_once_with("file_rec1")

    def test_store_failure_reports_orphans(self, test_client: TestClient, use_openai_client, recommendation, db_session) -> None:
        client = use_openai_client(Mock())
        client.vector_stores.files.delete = AsyncMock(side_effect=OpenAIError("store unavailable"))
        db_session.add(RecommendationFile(recommendation_id="rec1", file_id="file_rec1", file_name="rec1.json"))
        db_session.commit()

        response = test_client.delete("/api/recommendations/rec1")

        assert response.status_code == 200
        assert response.json()["orphaned_file_ids"] == ["file_rec1"]
        assert db_session.query(Recommendation).count() == 0

    def test_other_users_recommendation(self, test_client: TestClient, recommendation, db_session) -> None:
        recommendation.user_id = "user-2"
        db_session.commit()

        assert test_client.delete("/api/recommendations/rec1").status_code == 404
        assert db_session.query(Recommendation).count() == 1


class TestPageLinks:
    def test_links_saved_on_program(self, test_client: TestClient, recommendation, db_session) -> None:
        links = ["https://www.tum.de/msc-data-engineering", "https://www.tum.de/"]
        with patch("link_search.fetch_program_page_links", new=AsyncMock(return_value=links)) as fetch:
            response = test_client.post("/api/recommendations/rec1/page-links")

        assert response.json() == {"success": True, "page_link": links[0], "page_links": links}
        fetch.assert_awaited_once_with("MSc Data Engineering", "TU Munich")
        assert db_session.get(Program, "prog1").page_links == links

    def test_no_links_found(self, test_client: TestClient, recommendation) -> None:
        with patch("link_search.fetch_program_page_links", new=AsyncMock(return_value=[])):
            response = test_client.post("/api/recommendations/rec1/page-links")

        assert response.json() == {"success": False, "page_link": None, "page_links": []}
