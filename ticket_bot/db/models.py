import datetime
import json
from typing import Any, Dict, List, Literal, Optional, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TicketStatus = Literal["open", "closed"]
ArchiveFormat = Literal["json", "txt", "html"]


class _Entity(BaseModel):
    """Rows arrive with camelCase keys; attributes stay snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _load_json(value: Any) -> Any:
    # JSON columns are stored as TEXT.
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


class Ticket(_Entity):
    """Represents a support ticket."""

    ticket_id: int
    channel_id: str
    creator_id: str
    category: str
    number: int
    status: TicketStatus = "open"
    created_at: datetime.datetime
    closed_at: Optional[datetime.datetime] = None
    archived: bool = False
    archive_path: Optional[str] = None
    archive_format: Optional[ArchiveFormat] = None
    close_reason: Optional[str] = None
    closed_by: Optional[str] = None

    @field_validator("number")
    def number_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Ticket number must be positive")
        return v


class TicketParticipant(_Entity):
    """Represents a user added to a ticket."""

    id: int
    ticket_id: int
    user_id: str
    added_at: datetime.datetime
    added_by: str


class TicketMessage(_Entity):
    """Represents an archived ticket message."""

    id: int
    ticket_id: int
    message_id: str
    author_id: str
    author_username: str
    content: Optional[str] = None
    created_at: datetime.datetime
    edited_at: Optional[datetime.datetime] = None
    attachments: List[Any] = Field(default_factory=list)
    embeds: List[Any] = Field(default_factory=list)

    @field_validator("attachments", "embeds", mode="before")
    def parse_json_list(cls, v: Any) -> Any:
        return _load_json(v)


class TicketPanel(_Entity):
    """Represents a posted ticket-creation panel."""

    id: int
    channel_id: str
    message_id: str
    panel_config: Dict[str, Any]
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @field_validator("panel_config", mode="before")
    def parse_panel_config(cls, v: Any) -> Any:
        return _load_json(v)


# Shapes accepted by the access objects, keyed by domain field name.


class TicketIdentifier(TypedDict, total=False):
    ticketId: int
    channelId: str


class TicketFilters(TypedDict, total=False):
    creatorId: str
    category: str
    status: TicketStatus
    archived: bool
    closedBy: str


class TicketCreate(TypedDict, total=False):
    channelId: str
    creatorId: str
    category: str
    number: int
    status: TicketStatus


class TicketUpdate(TypedDict, total=False):
    status: TicketStatus
    closedAt: str
    closedBy: str
    closeReason: Optional[str]
    archived: bool
    archivePath: Optional[str]
    archiveFormat: Optional[ArchiveFormat]


class ParticipantIdentifier(TypedDict, total=False):
    id: int
    ticketId: int
    userId: str


class ParticipantFilters(TypedDict, total=False):
    ticketId: int
    userId: str
    addedBy: str


class ParticipantCreate(TypedDict):
    ticketId: int
    userId: str
    addedBy: str


class ParticipantUpdate(TypedDict, total=False):
    addedBy: str


class MessageIdentifier(TypedDict, total=False):
    id: int
    ticketId: int
    messageId: str


class MessageFilters(TypedDict, total=False):
    ticketId: int
    authorId: str


class MessageCreate(TypedDict, total=False):
    ticketId: int
    messageId: str
    authorId: str
    authorUsername: str
    content: Optional[str]
    createdAt: str
    editedAt: Optional[str]
    attachments: str
    embeds: str


class MessageUpdate(TypedDict, total=False):
    content: Optional[str]
    editedAt: Optional[str]
    attachments: str
    embeds: str


class PanelIdentifier(TypedDict, total=False):
    id: int
    messageId: str


class PanelFilters(TypedDict, total=False):
    channelId: str


class PanelCreate(TypedDict, total=False):
    channelId: str
    messageId: str
    panelConfig: str
    updatedAt: str


class PanelUpdate(TypedDict, total=False):
    channelId: str
    panelConfig: str
    updatedAt: str
