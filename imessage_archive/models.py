"""
Data records for the Messages schema

Two layers live here:

- Row records (``ChatRow``, ``MessageRow``, ``AttachmentRow``): one typed
  dataclass per query shape, built straight from a database row. Columns a
  schema version may lack are Optional.
- Display records (``ProcessedChat``, ``ProcessedMessage``, ...): value
  objects handed to callers, with decoded text and normalized timestamps.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from .text_decoder import decode_message_text

# chat.style values as Messages writes them: 43 is a group chat, 45 a
# one-to-one chat
GROUP_CHAT_STYLE = 43
INDIVIDUAL_CHAT_STYLE = 45


def _get(row: Any, key: str, default=None):
    """Safely read a column from a sqlite Row, tolerating absent keys and NULL"""
    try:
        value = row[key]
    except (KeyError, IndexError):
        return default
    return default if value is None else value


@dataclass
class ChatRow:
    """Row of the chat listing query"""
    id: int
    guid: Optional[str]
    display_name: Optional[str]
    chat_identifier: Optional[str]
    service_name: Optional[str]
    style: Optional[int]

    @classmethod
    def from_row(cls, row: Any) -> "ChatRow":
        return cls(
            id=row["id"],
            guid=_get(row, "guid"),
            display_name=_get(row, "display_name"),
            chat_identifier=_get(row, "chat_identifier"),
            service_name=_get(row, "service_name"),
            style=_get(row, "style"),
        )

    @property
    def is_group_chat(self) -> bool:
        return self.style == GROUP_CHAT_STYLE


@dataclass
class MessageRow:
    """Row of any message query (pagination, search, context)"""
    id: int
    text: Optional[str]
    attributed_body: Optional[bytes]
    is_from_me: bool
    date: Optional[int]
    handle_id: Optional[int]
    handle_name: Optional[str]
    service: Optional[str]
    subject: Optional[str]
    has_attachments: bool
    chat_id: Optional[int]
    chat_style: Optional[int] = None
    chat_identifier: Optional[str] = None
    chat_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "MessageRow":
        return cls(
            id=row["id"],
            text=_get(row, "text"),
            attributed_body=_get(row, "attributedBody"),
            is_from_me=bool(_get(row, "is_from_me", 0)),
            date=_get(row, "date"),
            handle_id=_get(row, "handle_id"),
            handle_name=_get(row, "handle_name"),
            service=_get(row, "message_service"),
            subject=_get(row, "subject"),
            has_attachments=bool(_get(row, "cache_has_attachments", 0)),
            chat_id=_get(row, "chat_id"),
            chat_style=_get(row, "chat_style"),
            chat_identifier=_get(row, "chat_identifier"),
            chat_name=_get(row, "chat_name"),
        )


@dataclass
class AttachmentRow:
    """Row of the attachment lookup query"""
    id: int
    message_id: int
    filename: Optional[str]
    mime_type: Optional[str]
    total_bytes: Optional[int]
    is_sticker: bool

    @classmethod
    def from_row(cls, row: Any) -> "AttachmentRow":
        return cls(
            id=row["id"],
            message_id=row["message_id"],
            filename=_get(row, "filename"),
            mime_type=_get(row, "mime_type"),
            total_bytes=_get(row, "total_bytes"),
            is_sticker=bool(_get(row, "is_sticker", 0)),
        )


@dataclass
class ProcessedAttachment:
    """Display-ready attachment metadata"""
    id: int
    filename: str
    mime_type: str
    total_bytes: int
    is_sticker: bool


@dataclass
class ProcessedMessage:
    """
    Display-ready message.

    ``text`` is recomputed from the raw columns on every access; the raw
    ``attributed_body`` stays available for offline analysis of rows the
    decoder cannot recover.
    """
    id: int
    is_from_me: bool
    timestamp: datetime
    handle_id: int
    handle_name: str
    chat_id: int
    is_group_message: bool = False
    service: Optional[str] = None
    subject: Optional[str] = None
    has_attachments: bool = False
    raw_text: Optional[str] = field(default=None, repr=False)
    attributed_body: Optional[bytes] = field(default=None, repr=False)
    attachments: List[ProcessedAttachment] = field(default_factory=list)

    @property
    def text(self) -> str:
        return decode_message_text(self.raw_text, self.attributed_body, self.has_attachments)

    def to_dict(self) -> dict:
        """JSON-friendly representation"""
        return {
            'id': self.id,
            'text': self.text,
            'is_from_me': self.is_from_me,
            'timestamp': self.timestamp.isoformat(),
            'handle_id': self.handle_id,
            'handle_name': self.handle_name,
            'chat_id': self.chat_id,
            'is_group_message': self.is_group_message,
            'service': self.service,
            'subject': self.subject,
            'attachments': [
                {
                    'id': att.id,
                    'filename': att.filename,
                    'mime_type': att.mime_type,
                    'total_bytes': att.total_bytes,
                    'is_sticker': att.is_sticker,
                }
                for att in self.attachments
            ],
        }


@dataclass
class ProcessedChat:
    """Display-ready conversation"""
    id: int
    guid: Optional[str]
    display_name: str
    is_group_chat: bool
    participants: List[str] = field(default_factory=list)
    chat_identifier: Optional[str] = None
    service_name: Optional[str] = None
    # Filled only by MessageArchive.get_chat_summary
    last_message: Optional[ProcessedMessage] = None
    message_count: int = 0


@dataclass
class ChatInfo:
    """Message count and latest activity for one chat"""
    message_count: int
    last_message_date: Optional[datetime] = None


@dataclass
class ContextWindow:
    """Slice of a chat around a target message; target_index is -1 when the target was not found"""
    messages: List[ProcessedMessage]
    target_index: int

    @property
    def found(self) -> bool:
        return self.target_index != -1


@dataclass
class MessagePage:
    """One page of a chat thread in chronological order"""
    messages: List[ProcessedMessage]
    offset: int
    page_size: int

    @property
    def has_more(self) -> bool:
        # An exact boundary costs one extra empty fetch
        return len(self.messages) == self.page_size

    @property
    def next_offset(self) -> int:
        return self.offset + len(self.messages)
