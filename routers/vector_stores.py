from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from openai import AsyncOpenAI, OpenAIError
from sqlalchemy.orm import Session
from typing import Optional
import binascii

import crud
import schemas
import vector_store
from auth import CurrentUser, get_current_user
from database import get_db
from openai_client import get_openai_client

router = APIRouter(prefix="/api/vector_stores", tags=["vector_stores"])

def _openai_error(action: str, e: OpenAIError) -> HTTPException:
    print(f"[ERROR] Failed to {action}: {str(e)}")
    return HTTPException(status_code=500, detail=f"Failed to {action}: {str(e)}")

def _owned_store(db: Session, user: CurrentUser, vector_store_id: str, action: str):
    """Only the store recorded on the caller's profile may be touched."""
    profile = crud.get_profile(db, user.id)
    if profile is None or profile.vector_store_id != vector_store_id:
        print(f"[ERROR] {user.id} tried to {action} vector store {vector_store_id}")
        raise HTTPException(status_code=403, detail=f"You do not have permission to {action} this vector store")

@router.post("/create_store")
async def create_store(
    payload: schemas.CreateStoreRequest,
    user: CurrentUser = Depends(get_current_user),
    client: AsyncOpenAI = Depends(get_openai_client),
):
    print(f"[ENDPOINT] POST /api/vector_stores/create_store for {user.id}")
    if not payload.name:
        raise HTTPException(status_code=400, detail="Name is required")
    try:
        return await vector_store.create_store(client, payload.name)
    except OpenAIError as e:
        raise _openai_error("create vector store", e)

@router.delete("/delete_store")
async def delete_store(
    vector_store_id: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: AsyncOpenAI = Depends(get_openai_client),
):
    if not vector_store_id:
        raise HTTPException(status_code=400, detail="Vector store ID is required")
    _owned_store(db, user, vector_store_id, "delete")
    try:
        return await vector_store.delete_store(client, vector_store_id)
    except OpenAIError as e:
        raise _openai_error("delete vector store", e)

@router.post("/upload_file")
async def upload_file(
    payload: schemas.UploadFileRequest,
    user: CurrentUser = Depends(get_current_user),
    client: AsyncOpenAI = Depends(get_openai_client),
):
    """Upload a base64-encoded file for later use in a vector store."""
    print(f"[ENDPOINT] POST /api/vector_stores/upload_file: {payload.file_object.name}")
    try:
        return await vector_store.upload_base64_file(client, payload.file_object.name, payload.file_object.content)
    except binascii.Error:
        raise HTTPException(status_code=400, detail="File content is not valid base64")
    except OpenAIError as e:
        raise _openai_error(f"upload file {payload.file_object.name}", e)

@router.post("/add_file")
async def add_file(
    payload: schemas.VectorStoreFileRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: AsyncOpenAI = Depends(get_openai_client),
):
    _owned_store(db, user, payload.vector_store_id, "add files to")
    try:
        return await vector_store.add_file(client, payload.vector_store_id, payload.file_id)
    except OpenAIError as e:
        raise _openai_error("add file to vector store", e)

@router.post("/add_files_batch")
async def add_files_batch(
    payload: schemas.VectorStoreBatchRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: AsyncOpenAI = Depends(get_openai_client),
):
    """Attach several uploaded files at once to the caller's own vector store."""
    if not payload.file_ids:
        raise HTTPException(status_code=400, detail="At least one file ID is required")
    _owned_store(db, user, payload.vector_store_id, "add files to")

    try:
        batch = await vector_store.add_files_batch(client, payload.vector_store_id, payload.file_ids)
    except OpenAIError as e:
        raise _openai_error("add files to vector store", e)
    return {"success": True, "batch_id": batch["id"], "status": batch["status"]}

@router.delete("/delete_file")
async def delete_file(
    file_id: Optional[str] = None,
    vector_store_id: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: AsyncOpenAI = Depends(get_openai_client),
):
    """Detach a file from the caller's store when one is given, then delete the upload."""
    if not file_id:
        raise HTTPException(status_code=400, detail="File ID is required")
    if vector_store_id:
        _owned_store(db, user, vector_store_id, "delete files from")
    try:
        return await vector_store.delete_file(client, vector_store_id, file_id)
    except OpenAIError as e:
        raise _openai_error("delete file", e)

@router.get("/list_files")
async def list_files(
    vector_store_id: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: AsyncOpenAI = Depends(get_openai_client),
):
    if not vector_store_id:
        raise HTTPException(status_code=400, detail="Vector store ID is required")
    _owned_store(db, user, vector_store_id, "list")
    try:
        return {"vector_store_id": vector_store_id, "file_ids": await vector_store.list_files(client, vector_store_id)}
    except OpenAIError as e:
        raise _openai_error("list vector store files", e)

@router.delete("/cleanup")
async def cleanup(
    vector_store_id: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: AsyncOpenAI = Depends(get_openai_client),
):
    """Delete every file in a vector store, then the store. Partial failures come back as 500 with details."""
    if not vector_store_id:
        raise HTTPException(status_code=400, detail="Vector store ID is required")
    _owned_store(db, user, vector_store_id, "clean up")
    result = await vector_store.cleanup_store(client, vector_store_id)
    if not result["success"]:
        return JSONResponse(status_code=500, content={"error": "Vector store cleanup incomplete", **result})
    return result

@router.post("/conversation_file")
async def conversation_file(
    payload: schemas.ConversationFileRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: AsyncOpenAI = Depends(get_openai_client),
):
    """Keep one transcript file per conversation in the user's vector store."""
    if crud.get_conversation(db, payload.conversation_id, user.id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found or access denied")
    profile = crud.get_profile(db, user.id)
    if profile is None or not profile.vector_store_id:
        raise HTTPException(status_code=400, detail="Vector store not configured")

    try:
        file_id = await vector_store.sync_conversation_file(
            client, db, payload.conversation_id, payload.messages, profile.vector_store_id,
        )
    except OpenAIError as e:
        raise _openai_error("store conversation file", e)
    return {"success": True, "file_id": file_id}
