"""Conversation history API"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..auth import get_current_identity
from ..db import database
from ..db.models import Conversation, ConversationSummary, Identity, UsageReport
from ..rate_limit import get_usage

router = APIRouter()


@router.get("/chats", response_model=List[ConversationSummary])
async def api_list_chats(identity: Identity = Depends(get_current_identity)):
    """Conversations of the caller, most recently updated first"""
    return await database.get_chats(identity.user_id)


@router.get("/chats/{chat_id}", response_model=Conversation)
async def api_get_chat(chat_id: str, identity: Identity = Depends(get_current_identity)):
    """One conversation with its messages in order"""
    conversation = await database.get_chat(chat_id, identity.user_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Chat not found")
    return conversation


@router.delete("/chats/{chat_id}")
async def api_delete_chat(chat_id: str, identity: Identity = Depends(get_current_identity)):
    """Delete a conversation"""
    if not await database.delete_chat(chat_id, identity.user_id):
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"message": "Chat deleted", "chat_id": chat_id}


@router.get("/usage", response_model=UsageReport)
async def api_usage(identity: Identity = Depends(get_current_identity)):
    """Today's request count against the daily limit"""
    return await get_usage(identity)
