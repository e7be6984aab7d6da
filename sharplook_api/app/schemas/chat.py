"""
Schemas for conversations and messages.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ConversationCreate(BaseModel):
    other_user_id: int
    booking_id: Optional[int] = None


class MessageCreate(BaseModel):
    text: Optional[str] = Field(None, max_length=5000)
    message_type: Literal["text", "image", "file", "audio", "video"] = "text"
    attachments: List[str] = Field(default_factory=list)
