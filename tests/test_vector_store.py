"""Tests for vector store housekeeping and recommendation sync."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from openai import OpenAIError
from sqlalchemy.exc import SQLAlchemyError

import crud
import vector_store
from models import ConversationVectorFile, RecommendationFile


def fake_client(file_ids=()) -> Mock:
    client = Mock()
    client.vector_stores.files.list = AsyncMock(return_value=Mock(data=[Mock(id=f) for f in file_ids]))
    client.vector_stores.files.delete = AsyncMock()
    client.vector_stores.files.create = AsyncMock(return_value=Mock(id="vsf_1", status="completed"))
    client.vector_stores.delete = AsyncMock()
    client.files.delete = AsyncMock()
    client.files.create = AsyncMock(side_effect=[Mock(id="file_new_1"), Mock(id="file_new_2")])
    return client


class TestCleanupStore:
    @pytest.mark.asyncio
    async def test_everything_deleted(self) -> None:
        client = fake_client(["f1", "f2"])

        result = await vector_store.cleanup_store(client, "vs_1")

        assert result["success"] is True
        assert result["deleted_files"] == ["f1", "f2"]
        client.vector_stores.delete.assert_awaited_once_with("vs_1")

    @pytest.mark.asyncio
    async def test_partial_failure(self) -> None:
        client = fake_client(["f1", "f2"])
        client.files.delete.side_effect = [None, OpenAIError("file locked")]

        result = await vector_store.cleanup_store(client, "vs_1")

        assert result["success"] is False
        assert result["store_deleted"] is True
        assert result["failed_files"] == ["f2"]


class TestDeleteFile:
    @pytest.mark.asyncio
    async def test_without_store_only_deletes_upload(self) -> None:
        client = fake_client()

        await vector_store.delete_file(client, None, "f1")

        client.vector_stores.files.delete.assert_not_awaited()
        client.files.delete.assert_awaited_once_with("f1")


class TestSyncRecommendation:
    @pytest.mark.asyncio
    async def test_replaces_previous_file(self, db_session, recommendation) -> None:
        client = fake_client()

        first = await vector_store.sync_recommendation(client, db_session, "user-1", recommendation, "vs_1")
        second = await vector_store.sync_recommendation(client, db_session, "user-1", recommendation, "vs_1")

        assert (first, second) == ("file_new_1", "file_new_2")
        assert [r.file_id for r in db_session.query(RecommendationFile).all()] == ["file_new_2"]
        client.files.delete.assert_awaited_once_with("file_new_1")

    @pytest.mark.asyncio
    async def test_requires_vector_store(self, db_session, recommendation) -> None:
        with pytest.raises(ValueError):
            await vector_store.sync_recommendation(fake_client(), db_session, "user-1", recommendation, None)

    @pytest.mark.asyncio
    async def test_batch_collects_errors(self, db_session, recommendation) -> None:
        client = fake_client()
        client.files.create = AsyncMock(side_effect=OpenAIError("quota exceeded"))

        result = await vector_store.sync_recommendations(client, db_session, "user-1", [recommendation], "vs_1")

        assert result["success"] is False
        assert result["errors"] == [{"recommendation_id": "rec1", "error": "quota exceeded"}]


class TestConversationFile:
    @pytest.mark.asyncio
    async def test_pointer_moves_to_new_transcript(self, db_session) -> None:
        conversation = crud.create_conversation(db_session, "user-1")
        client = fake_client()
        messages = [{"role": "user", "content": "Hi"}, {"role": "assistant", "content": [{"type": "output_text", "text": "Hello"}]}]

        await vector_store.sync_conversation_file(client, db_session, conversation.id, messages, "vs_1")
        await vector_store.sync_conversation_file(client, db_session, conversation.id, messages, "vs_1")

        pointer = db_session.query(ConversationVectorFile).one()
        assert pointer.vector_store_file_id == "file_new_2"
        client.files.delete.assert_awaited_once_with("file_new_1")
        uploaded = client.files.create.await_args_list[0].kwargs["file"][1]
        assert uploaded.decode("utf-8") == "user: Hi\n\nassistant: Hello"


class TestSyncFailures:
    @pytest.mark.asyncio
    async def test_failed_attach_keeps_previous_file(self, db_session, recommendation) -> None:
        crud.save_recommendation_file(db_session, "rec1", "file_old", "rec1.json")
        client = fake_client()
        client.vector_stores.files.create = AsyncMock(side_effect=OpenAIError("store unavailable"))

        with pytest.raises(OpenAIError):
            await vector_store.sync_recommendation(client, db_session, "user-1", recommendation, "vs_1")

        assert [r.file_id for r in db_session.query(RecommendationFile).all()] == ["file_old"]
        client.files.delete.assert_awaited_once_with("file_new_1")

    @pytest.mark.asyncio
    async def test_failed_db_write_discards_new_file(self, db_session, recommendation) -> None:
        client = fake_client()

        with patch("crud.save_recommendation_file", side_effect=SQLAlchemyError("database is locked")):
            result = await vector_store.sync_recommendations(client, db_session, "user-1", [recommendation], "vs_1")

        assert result["success"] is False
        assert result["errors"] == [{"recommendation_id": "rec1", "error": "database is locked"}]
        client.vector_stores.files.delete.assert_awaited_once_with(file_id="file_new_1", vector_store_id="vs_1")
