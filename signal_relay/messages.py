"""
Inbound websocket messages.

Every frame is a JSON object {"event": <name>, "data": <object>}. Each event
name maps to one pydantic model; anything that does not validate is dropped.
"""
import json
import logging
from typing import Annotated, Any, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

logger = logging.getLogger("signal_relay")


class InboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class Join(InboundMessage):
    event: Literal["join"]
    room_id: str = Field(alias="roomId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    display_name: Optional[str] = Field(default=None, alias="displayName")

    @field_validator("display_name", mode="before")
    @classmethod
    def _name_or_none(cls, value: Any) -> Optional[str]:
        # Non-string names fall back to userId instead of rejecting the join
        return value if isinstance(value, str) else None


class Heartbeat(InboundMessage):
    event: Literal["ping"]


class ConsentToggle(InboundMessage):
    event: Literal["stream:consent"]
    room_id: str = Field(alias="roomId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    allow: bool = False

    @field_validator("allow", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        return bool(value)


class AdminSubscribe(InboundMessage):
    event: Literal["admin:subscribe"]
    room_id: str = Field(alias="roomId", min_length=1)


class RelaySdp(InboundMessage):
    """Offer or answer; sdp is forwarded untouched"""
    event: Literal["webrtc:offer", "webrtc:answer"]
    to: str = Field(min_length=1)
    sdp: Any = None


class RelayIce(InboundMessage):
    event: Literal["webrtc:ice"]
    to: str = Field(min_length=1)
    candidate: Any = None


Message = Annotated[
    Union[Join, Heartbeat, ConsentToggle, AdminSubscribe, RelaySdp, RelayIce],
    Field(discriminator="event"),
]

_message_adapter = TypeAdapter(Message)

# Events that carry no fields; whatever payload they arrive with is ignored
PAYLOADLESS_EVENTS = {"ping"}


def parse_frame(raw: str) -> Optional[Tuple[str, Any]]:
    """Split a text frame into (event, data); None if it is not a valid envelope"""
    try:
        frame = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Dropping non-JSON frame")
        return None

    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        logger.debug("Dropping frame without event name")
        return None

    return frame["event"], frame.get("data")


def decode(event: str, data: Any) -> Optional[InboundMessage]:
    """Validate a payload against the model for its event name"""
    if data is None or event in PAYLOADLESS_EVENTS:
        data = {}
    if not isinstance(data, dict):
        logger.debug(f"Dropping {event}: payload is not an object")
        return None

    try:
        return _message_adapter.validate_python({**data, "event": event})
    except ValidationError as e:
        logger.debug(f"Dropping {event}: {e.error_count()} validation error(s)")
        return None


def encode(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": data})
