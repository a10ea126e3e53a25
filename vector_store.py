"""
Vector store operations (OpenAI vector stores and files).

Each user owns one vector store holding user_profile.json, one JSON file per
recommendation and one transcript per conversation. The assistant's
file_search tool reads from it.
"""

from openai import AsyncOpenAI, OpenAIError
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
import base64
import json
import logging

import crud
from models import Recommendation, utcnow

logger = logging.getLogger(__name__)

async def create_store(client: AsyncOpenAI, name: str) -> Dict[str, Any]:
    store = await client.vector_stores.create(name=name)
    logger.info(f"Vector store created: {store.id}")
    return {"id": store.id, "name": store.name}

async def delete_store(client: AsyncOpenAI, vector_store_id: str) -> Dict[str, Any]:
    result = await client.vector_stores.delete(vector_store_id)
    return {"id": vector_store_id, "deleted": bool(getattr(result, "deleted", True))}

async def upload_file(client: AsyncOpenAI, name: str, content: bytes) -> Dict[str, Any]:
    uploaded = await client.files.create(file=(name, content), purpose="assistants")
    return {"id": uploaded.id, "filename": name}

async def upload_base64_file(client: AsyncOpenAI, name: str, content_b64: str) -> Dict[str, Any]:
    return await upload_file(client, name, base64.b64decode(content_b64))

async def add_file(client: AsyncOpenAI, vector_store_id: str, file_id: str) -> Dict[str, Any]:
    result = await client.vector_stores.files.create(vector_store_id=vector_store_id, file_id=file_id)
    return {"id": result.id, "vector_store_id": vector_store_id, "status": getattr(result, "status", None)}

async def add_files_batch(client: AsyncOpenAI, vector_store_id: str, file_ids: List[str]) -> Dict[str, Any]:
    batch = await client.vector_stores.file_batches.create(vector_store_id=vector_store_id, file_ids=file_ids)
    return {"id": batch.id, "vector_store_id": vector_store_id, "status": getattr(batch, "status", None)}

async def delete_file(client: AsyncOpenAI, vector_store_id: Optional[str], file_id: str, delete_upload: bool = True) -> Dict[str, Any]:
    """Detach a file from the store (when given) and, by default, delete the uploaded file too."""
    if vector_store_id:
        await client.vector_stores.files.delete(file_id=file_id, vector_store_id=vector_store_id)
    if delete_upload:
        await client.files.delete(file_id)
    return {"id": file_id, "deleted": True}

async def list_files(client: AsyncOpenAI, vector_store_id: str) -> List[str]:
    page = await client.vector_stores.files.list(vector_store_id=vector_store_id, limit=100)
    return [item.id for item in page.data]

async def cleanup_store(client: AsyncOpenAI, vector_store_id: str) -> Dict[str, Any]:
    """
    Delete every file in the store, then the store itself.
    Failures on individual files are collected; success means everything went.
    """
    deleted, failed = [], []
    try:
        file_ids = await list_files(client, vector_store_id)
    except OpenAIError as e:
        logger.warning(f"Could not list files of {vector_store_id}: {e}")
        file_ids = []

    for file_id in file_ids:
        try:
            await delete_file(client, vector_store_id, file_id)
            deleted.append(file_id)
        except OpenAIError as e:
            logger.warning(f"Failed to delete file {file_id}: {e}")
            failed.append(file_id)

    store_deleted = False
    try:
        await client.vector_stores.delete(vector_store_id)
        store_deleted = True
    except OpenAIError as e:
        logger.warning(f"Failed to delete vector store {vector_store_id}: {e}")

    return {
        "success": store_deleted and not failed,
        "store_deleted": store_deleted,
        "deleted_files": deleted,
        "failed_files": failed,
    }

def recommendation_document(user_id: str, recommendation: Dict[str, Any]) -> str:
    """JSON document stored in the vector store for one recommendation."""
    now = utcnow().isoformat()
    return json.dumps({**recommendation, "user_id": user_id, "synced_at": now}, indent=2, default=str)

async def sync_recommendation(
    client: AsyncOpenAI,
    db: Session,
    user_id: str,
    recommendation: Recommendation,
    vector_store_id: Optional[str],
) -> str:
    """
    Replace the recommendation's file in the user's vector store.

    The new file is attached to the store before the recommendation_files row
    is replaced, so a failed attach leaves the previous file and row in place.
    Returns the new file ID; raises on failure so callers can report partial success.
    """
    if not vector_store_id:
        raise ValueError("No vector store ID provided. Cannot sync recommendation.")

    data = crud.recommendation_to_dict(recommendation)
    file_name = f"recommendation_{user_id}_{recommendation.pathway_id or 'no-pathway'}_{recommendation.id}.json"

    uploaded = await upload_file(client, file_name, recommendation_document(user_id, data).encode("utf-8"))
    try:
        await add_file(client, vector_store_id, uploaded["id"])
    except OpenAIError:
        await _discard_file(client, None, uploaded["id"])
        raise

    try:
        replaced = crud.save_recommendation_file(db, recommendation.id, uploaded["id"], file_name)
    except Exception:
        await _discard_file(client, vector_store_id, uploaded["id"])
        raise

    for old_file_id in replaced:
        await _discard_file(client, vector_store_id, old_file_id)

    logger.info(f"Synced recommendation {recommendation.id} as {uploaded['id']}")
    return uploaded["id"]

async def _discard_file(client: AsyncOpenAI, vector_store_id: Optional[str], file_id: str):
    try:
        await delete_file(client, vector_store_id, file_id)
    except OpenAIError as e:
        # May already be gone
        logger.warning(f"Could not remove file {file_id}: {e}")

async def sync_recommendations(
    client: AsyncOpenAI,
    db: Session,
    user_id: str,
    recommendations: List[Recommendation],
    vector_store_id: Optional[str],
) -> Dict[str, Any]:
    """Sync several recommendations, continuing past individual failures."""
    synced, errors = [], []
    for recommendation in recommendations:
        try:
            synced.append(await sync_recommendation(client, db, user_id, recommendation, vector_store_id))
        except Exception as e:
            logger.warning(f"Failed to sync recommendation {recommendation.id}: {e}")
            db.rollback()
            errors.append({"recommendation_id": recommendation.id, "error": str(e)})
    return {"success": not errors, "synced_file_ids": synced, "errors": errors}

async def remove_recommendation_files(client: AsyncOpenAI, vector_store_id: Optional[str], file_ids: List[str]) -> List[str]:
    """Detach and delete files of removed recommendations. Returns the IDs that could not be removed."""
    failed = []
    for file_id in file_ids:
        try:
            await delete_file(client, vector_store_id, file_id)
        except OpenAIError as e:
            logger.warning(f"Could not remove recommendation file {file_id}: {e}")
            failed.append(file_id)
    return failed

def conversation_transcript(messages: List[Dict[str, Any]]) -> str:
    lines = []
    for message in messages:
        content = message.get("content")
        if isinstance(content, list):
            content = " ".join(part.get("text", "") for part in content if isinstance(part, dict))
        lines.append(f"{message.get('role', 'user')}: {content}")
    return "\n\n".join(lines)

async def sync_conversation_file(
    client: AsyncOpenAI,
    db: Session,
    conversation_id: str,
    messages: List[Dict[str, Any]],
    vector_store_id: str,
) -> str:
    """Upload the conversation transcript, point the conversation at it and drop the previous copy."""
    file_name = f"conversation_{conversation_id}.txt"
    uploaded = await upload_file(client, file_name, conversation_transcript(messages).encode("utf-8"))
    await add_file(client, vector_store_id, uploaded["id"])
    previous = crud.upsert_conversation_vector_file(db, conversation_id, uploaded["id"])

    if previous and previous != uploaded["id"]:
        try:
            await delete_file(client, vector_store_id, previous)
        except OpenAIError as e:
            logger.warning(f"Could not remove previous conversation file {previous}: {e}")
    return uploaded["id"]
