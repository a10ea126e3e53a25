from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

import crud
import schemas
from auth import CurrentUser, get_current_user
from database import get_db
from gemini_client import generate_conversation_title

router = APIRouter(prefix="/api", tags=["conversations"])

def _owned_conversation(db: Session, conversation_id: str, user: CurrentUser):
    conversation = crud.get_conversation(db, conversation_id, user.id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation

@router.get("/conversations", response_model=List[schemas.ConversationResponse])
async def list_conversations(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the user's conversations, most recently active first."""
    return crud.list_conversations(db, user.id)

@router.post("/conversations", response_model=schemas.ConversationResponse)
async def create_conversation(
    payload: schemas.ConversationCreate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    print(f"[ENDPOINT] POST /api/conversations for {user.id}")
    return crud.create_conversation(db, user.id, payload.title)

@router.get("/conversations/{conversation_id}", response_model=schemas.ConversationResponse)
async def get_conversation(
    conversation_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _owned_conversation(db, conversation_id, user)

@router.patch("/conversations/{conversation_id}", response_model=schemas.ConversationResponse)
async def rename_conversation(
    conversation_id: str,
    payload: schemas.ConversationUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversation = _owned_conversation(db, conversation_id, user)
    return crud.update_conversation_title(db, conversation, payload.title)

@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversation = _owned_conversation(db, conversation_id, user)
    crud.delete_conversation(db, conversation)
    return {"success": True}

@router.get("/conversations/{conversation_id}/messages", response_model=List[schemas.MessageResponse])
async def list_messages(
    conversation_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Messages of a conversation in the order they were written."""
    conversation = _owned_conversation(db, conversation_id, user)
    return crud.list_messages(db, conversation.id)

@router.post("/conversations/{conversation_id}/messages", response_model=schemas.MessageResponse)
async def add_message(
    conversation_id: str,
    payload: schemas.MessageCreate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversation = _owned_conversation(db, conversation_id, user)
    if payload.message_content is None:
        raise HTTPException(status_code=400, detail="message_content is required")
    try:
        return crud.add_message(db, conversation, user.id, payload.role, payload.message_content)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/generate-title")
def generate_title(payload: schemas.TitleRequest):
    """Short title for a conversation from its first message."""
    return {"title": generate_conversation_title(payload.message_content)}
