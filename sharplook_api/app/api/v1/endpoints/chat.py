"""
Chat endpoints for one-to-one conversations.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, status

from sharplook_api.app.core.pagination import Pagination, pagination_params
from sharplook_api.app.core.rate_limit import search_limiter
from sharplook_api.app.core.responses import paginated, success
from sharplook_api.app.core.security import get_current_user
from sharplook_api.app.schemas.chat import ConversationCreate, MessageCreate
from sharplook_api.app.services.chat_service import ChatService


router = APIRouter()


@router.post("/conversations")
async def create_conversation(
    data: ConversationCreate,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    conversation = await ChatService.create_or_get_conversation(
        current_user["id"], data.other_user_id, data.booking_id
    )
    return success({"conversation": conversation}, "Conversation retrieved successfully")


@router.get("/conversations")
async def list_conversations(
    pagination: Pagination = Depends(pagination_params(20)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    conversations, total = await ChatService.list_conversations(
        current_user["id"], pagination.limit, pagination.offset
    )
    return paginated(conversations, pagination.page, pagination.limit, total, "Conversations retrieved successfully")


@router.get("/conversations/{conversation_id}/messages")
async def get_messages(
    conversation_id: int,
    pagination: Pagination = Depends(pagination_params(50)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    messages, total = await ChatService.get_messages(
        conversation_id, current_user["id"], pagination.limit, pagination.offset
    )
    return paginated(messages, pagination.page, pagination.limit, total, "Messages retrieved successfully")


@router.post("/conversations/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: int,
    data: MessageCreate,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    message = await ChatService.send_message(conversation_id, current_user["id"], data.model_dump())
    return success({"message": message}, "Message sent successfully")


@router.put("/conversations/{conversation_id}/read")
async def mark_as_read(conversation_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    await ChatService.mark_as_read(conversation_id, current_user["id"])
    return success(message="Messages marked as read")


@router.post("/conversations/{conversation_id}/archive")
async def archive_conversation(
    conversation_id: int,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    await ChatService.archive_conversation(conversation_id, current_user["id"])
    return success(message="Conversation archived successfully")


@router.delete("/messages/{message_id}")
async def delete_message(message_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    await ChatService.delete_message(message_id, current_user["id"])
    return success(message="Message deleted successfully")


@router.get("/unread-count")
async def unread_count(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    count = await ChatService.get_unread_count(current_user["id"])
    return success({"unread_count": count}, "Unread count retrieved successfully")


@router.get("/search", dependencies=[Depends(search_limiter)])
async def search_messages(
    q: str = Query(..., min_length=1),
    pagination: Pagination = Depends(pagination_params(20)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    messages, total = await ChatService.search_messages(current_user["id"], q, pagination.limit, pagination.offset)
    return paginated(messages, pagination.page, pagination.limit, total, "Search results retrieved successfully")
