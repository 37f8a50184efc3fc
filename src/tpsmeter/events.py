"""Typed host events.

The host delivers loosely shaped JSON payloads. This module decodes them
into pydantic models: one model per message-part kind, collected in the
``Part`` union, and one model per event envelope. Anything that fails to
decode becomes ``None`` so the meter can skip it without touching state.

Usage:
    event = decode_event(payload)
    match event:
        case PartUpdated(part=TextPart() as part):
            ...
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from tpsmeter.exceptions import EventParseError
from tpsmeter.logging import get_logger
from tpsmeter.models import AgentMetadata

__all__ = [
    "AgentIdentity",
    "TextPart",
    "ReasoningPart",
    "ToolPart",
    "FilePart",
    "SubtaskPart",
    "SnapshotPart",
    "StepStartPart",
    "StepFinishPart",
    "PatchPart",
    "AgentPart",
    "RetryPart",
    "CompactionPart",
    "UnknownPart",
    "Part",
    "MessageInfo",
    "PartUpdated",
    "MessageUpdated",
    "SessionIdle",
    "HostEvent",
    "decode_part",
    "decode_event",
    "extract_part_text",
]

logger = get_logger(__name__)


class _HostModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class AgentIdentity(_HostModel):
    id: str | None = None
    type: str | None = None
    name: str | None = None


class _AgentTagged(_HostModel):
    """Fields the host uses to tag a part or message with an agent."""

    agent: AgentIdentity | str | None = None
    agent_id: str | None = Field(default=None, alias="agentId")
    agent_type: str | None = Field(default=None, alias="agentType")

    def agent_metadata(self) -> AgentMetadata:
        identity = self.agent if isinstance(self.agent, AgentIdentity) else None
        plain_name = self.agent if isinstance(self.agent, str) else None
        return AgentMetadata(
            agent_id=self.agent_id or (identity.id if identity else None),
            agent_type=self.agent_type or (identity.type if identity else None),
            agent_name=(identity.name if identity else None) or plain_name,
        )


# =============================================================================
# Message parts
# =============================================================================


class _PartBase(_AgentTagged):
    id: str | None = None
    session_id: str | None = Field(default=None, alias="sessionID")
    message_id: str = Field(alias="messageID")


class TextPart(_PartBase):
    type: Literal["text"] = "text"
    text: str = ""


class ReasoningPart(_PartBase):
    type: Literal["reasoning"] = "reasoning"
    text: str = ""


class ToolState(_HostModel):
    status: str | None = None
    raw: str | None = None
    output: str | None = None
    error: str | None = None
    input: dict[str, Any] | None = None
    title: str | None = None


class ToolPart(_PartBase):
    type: Literal["tool"] = "tool"
    tool: str | None = None
    state: ToolState | None = None


class SourceText(_HostModel):
    value: str | None = None


class PartSource(_HostModel):
    text: SourceText | None = None
    path: str | None = None
    name: str | None = None
    uri: str | None = None


class FilePart(_PartBase):
    type: Literal["file"] = "file"
    filename: str | None = None
    url: str | None = None
    source: PartSource | None = None


class SubtaskPart(_PartBase):
    type: Literal["subtask"] = "subtask"
    prompt: str | None = None
    description: str | None = None
    command: str | None = None


class SnapshotPart(_PartBase):
    type: Literal["snapshot"] = "snapshot"
    snapshot: str | None = None


class StepStartPart(_PartBase):
    type: Literal["step-start"] = "step-start"
    snapshot: str | None = None


class StepFinishPart(_PartBase):
    type: Literal["step-finish"] = "step-finish"
    reason: str | None = None
    snapshot: str | None = None


class PatchPart(_PartBase):
    type: Literal["patch"] = "patch"
    files: list[str] = Field(default_factory=list)


class AgentPart(_PartBase):
    type: Literal["agent"] = "agent"
    name: str | None = None
    source: PartSource | None = None


class RetryPart(_PartBase):
    type: Literal["retry"] = "retry"
    error: Any = None


class CompactionPart(_PartBase):
    type: Literal["compaction"] = "compaction"
    auto: bool = False


class UnknownPart(_PartBase):
    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    type: str


_KnownPart = (
    TextPart
    | ReasoningPart
    | ToolPart
    | FilePart
    | SubtaskPart
    | SnapshotPart
    | StepStartPart
    | StepFinishPart
    | PatchPart
    | AgentPart
    | RetryPart
    | CompactionPart
)
Part = _KnownPart | UnknownPart

_known_part_adapter = TypeAdapter(
    Annotated[_KnownPart, Field(discriminator="type")]
)


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, BaseModel):
        value = value.model_dump(exclude_none=True)
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return ""


def _join(*values: str | None) -> str:
    return "\n".join(v for v in values if v)


def _source_text(source: PartSource | None) -> str | None:
    if source is None or source.text is None:
        return None
    return source.text.value


def extract_part_text(part: Part) -> str:
    """Return the displayable text carried by a message part."""
    match part:
        case TextPart(text=text) | ReasoningPart(text=text):
            return text
        case SubtaskPart():
            return _join(part.prompt, part.description, part.command)
        case ToolPart(state=None):
            return ""
        case ToolPart(state=state):
            return _join(
                state.raw,
                state.output,
                state.error,
                _stringify(state.input) if state.input else None,
                state.title,
            )
        case FilePart(source=source):
            return _join(
                _source_text(source),
                part.filename,
                part.url,
                source.path if source else None,
                source.name if source else None,
                source.uri if source else None,
            )
        case SnapshotPart(snapshot=snapshot) | StepStartPart(snapshot=snapshot):
            return snapshot or ""
        case StepFinishPart():
            return _join(part.reason, part.snapshot)
        case PatchPart(files=files):
            return "\n".join(files)
        case AgentPart(source=source):
            return _join(part.name, _source_text(source))
        case RetryPart(error=error):
            return _stringify(error)
        case CompactionPart(auto=auto):
            return "compaction:auto" if auto else "compaction"
        case UnknownPart():
            return _stringify(part.model_dump(by_alias=True, exclude_none=True))


def decode_part(raw: Mapping[str, Any]) -> Part:
    """Decode one part payload, falling back to UnknownPart for new kinds.

    Raises:
        EventParseError: If the payload is not a mapping or lacks required
            fields.
    """
    if not isinstance(raw, Mapping):
        raise EventParseError("part payload is not an object")
    part_type = raw.get("type")
    if not isinstance(part_type, str) or not part_type:
        raise EventParseError("part payload has no type")
    try:
        return _known_part_adapter.validate_python(dict(raw))
    except ValidationError as e:
        if not any(err["type"] == "union_tag_invalid" for err in e.errors()):
            raise EventParseError(f"invalid {part_type} part: {e}", part_type) from e
    try:
        return UnknownPart.model_validate(dict(raw))
    except ValidationError as e:
        raise EventParseError(f"invalid {part_type} part: {e}", part_type) from e


# =============================================================================
# Event envelopes
# =============================================================================


class MessageTime(_HostModel):
    created: float | None = None
    completed: float | None = None


class TokenUsage(_HostModel):
    input: int = 0
    output: int = 0
    reasoning: int = 0


class MessageInfo(_AgentTagged):
    id: str
    session_id: str = Field(alias="sessionID")
    role: str
    time: MessageTime = Field(default_factory=MessageTime)
    tokens: TokenUsage | None = None
    finish: str | None = None
    error: Any = None
    mode: str | None = None

    def agent_metadata(self) -> AgentMetadata:
        metadata = super().agent_metadata()
        if metadata.agent_name is None and self.mode and not metadata.is_empty:
            return AgentMetadata(
                agent_id=metadata.agent_id,
                agent_type=metadata.agent_type,
                agent_name=self.mode,
            )
        return metadata

    @property
    def reported_tokens(self) -> int:
        if self.tokens is None:
            return 0
        return max(0, self.tokens.output) + max(0, self.tokens.reasoning)


class PartUpdated(_HostModel):
    type: Literal["message.part.updated"] = "message.part.updated"
    part: Part
    delta: str | None = None

    @property
    def session_id(self) -> str | None:
        return self.part.session_id


class MessageUpdated(_HostModel):
    type: Literal["message.updated"] = "message.updated"
    info: MessageInfo


class SessionIdle(_HostModel):
    type: Literal["session.idle"] = "session.idle"
    session_id: str | None = Field(default=None, alias="sessionID")


HostEvent = PartUpdated | MessageUpdated | SessionIdle


def _decode(payload: Mapping[str, Any]) -> HostEvent | None:
    if not isinstance(payload, Mapping):
        raise EventParseError("event payload is not an object")
    event_type = payload.get("type")
    properties = payload.get("properties")
    if not isinstance(properties, Mapping):
        raise EventParseError("event has no properties", event_type)

    try:
        if event_type == "message.part.updated":
            part_raw = properties.get("part")
            if part_raw is None:
                raise EventParseError("part update without part", event_type)
            delta = properties.get("delta")
            return PartUpdated(
                part=decode_part(part_raw),
                delta=delta if isinstance(delta, str) else None,
            )
        if event_type == "message.updated":
            return MessageUpdated.model_validate({"info": properties.get("info")})
        if event_type == "session.idle":
            return SessionIdle.model_validate(properties)
    except ValidationError as e:
        raise EventParseError(f"invalid {event_type} event: {e}", event_type) from e
    return None


def decode_event(payload: Mapping[str, Any]) -> HostEvent | None:
    """Decode a host payload into a typed event.

    Returns:
        The decoded event, or None for unknown event types and malformed
        payloads.
    """
    try:
        return _decode(payload)
    except EventParseError as e:
        logger.debug("event_skipped", reason=e.message, event_type=e.event_type)
        return None
