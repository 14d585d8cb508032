"""Wire models for private-message frames."""
from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from chat_sync.domain.entities.message import Message
from chat_sync.domain.entities.participant import Partner

T = TypeVar("T")


class MessageFrame(BaseModel):
    """JSON body exchanged on the outbound and private addresses.

    Legacy producers send `senderClerkId` / `senderUsername` style names;
    both spellings are accepted, the camelCase one is always emitted.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    sender_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("senderId", "senderClerkId"),
        serialization_alias="senderId",
    )
    recipient_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("recipientId", "recipientClerkId"),
        serialization_alias="recipientId",
    )
    sender_display_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("senderDisplayName", "senderUsername"),
        serialization_alias="senderDisplayName",
    )
    recipient_display_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("recipientDisplayName", "recipientUsername"),
        serialization_alias="recipientDisplayName",
    )
    content: str
    timestamp: datetime

    @classmethod
    def from_message(cls, message: Message) -> MessageFrame:
        return cls(
            sender_id=message.sender_id,
            recipient_id=message.recipient_id,
            sender_display_name=message.sender_display_name,
            recipient_display_name=message.recipient_display_name,
            content=message.content,
            timestamp=message.timestamp,
        )

    def to_message(self) -> Message:
        return Message(
            sender_id=self.sender_id,
            recipient_id=self.recipient_id,
            sender_display_name=self.sender_display_name or self.sender_id,
            recipient_display_name=self.recipient_display_name or self.recipient_id,
            content=self.content,
            timestamp=self.timestamp,
        )


class ApiEnvelope(BaseModel, Generic[T]):
    """`{success, data, message}` wrapper used by the REST collaborators."""

    success: bool = True
    data: list[T]  # type: ignore[type-var]
    message: str = ""


class PartnerFrame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1, validation_alias=AliasChoices("id", "clerkId"))
    display_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("displayName", "username"),
    )

    def to_partner(self) -> Partner:
        return Partner(id=self.id, display_name=self.display_name or self.id)
