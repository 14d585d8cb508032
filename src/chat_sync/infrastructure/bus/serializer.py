from __future__ import annotations

from pydantic import ValidationError

from chat_sync.application.exceptions import MalformedFrameError
from chat_sync.domain.entities.message import Message
from chat_sync.infrastructure.bus.protocol import MessageFrame


def serialize_message(message: Message) -> str:
    return MessageFrame.from_message(message).model_dump_json(by_alias=True)


def deserialize_message(raw: str | bytes) -> Message:
    """Parse one frame, raising MalformedFrameError on any defect."""
    try:
        frame = MessageFrame.model_validate_json(raw)
    except ValidationError as exc:
        fields = ", ".join(
            ".".join(str(p) for p in err["loc"]) or "<root>" for err in exc.errors()
        )
        raise MalformedFrameError(f"invalid frame: {fields}", raw=raw) from exc
    return frame.to_message()
