"""Projection of raw rows into display records"""

import re
from typing import Dict, Iterable, List, Optional

from .contacts import ContactBook
from .models import (
    GROUP_CHAT_STYLE,
    AttachmentRow,
    ChatRow,
    MessageRow,
    ProcessedAttachment,
    ProcessedChat,
    ProcessedMessage,
)
from .timestamps import apple_timestamp_to_datetime

UNKNOWN_HANDLE = "Unknown"

_NON_DIGITS = re.compile(r"\D")


def format_phone_number(raw: str) -> str:
    """Format US-style numbers for display, leaving anything else untouched"""
    if '@' in raw:
        return raw

    cleaned = _NON_DIGITS.sub("", raw)
    if len(cleaned) == 10:
        return f"({cleaned[:3]}) {cleaned[3:6]}-{cleaned[6:]}"
    if len(cleaned) == 11 and cleaned[0] == '1':
        return f"+1 ({cleaned[1:4]}) {cleaned[4:7]}-{cleaned[7:]}"
    return raw


def format_handle_name(raw: Optional[str]) -> str:
    if not raw:
        return UNKNOWN_HANDLE
    return format_phone_number(raw)


def resolve_display_name(chat_id: int, display_name: Optional[str], chat_identifier: Optional[str]) -> str:
    """Explicit chat name, else the formatted identifier, else a generic label"""
    if display_name:
        return display_name
    if chat_identifier:
        return format_phone_number(chat_identifier)
    return f"Contact {chat_id}"


def is_group_style(style: Optional[int]) -> bool:
    return style == GROUP_CHAT_STYLE


class MessageMapper:
    """Turns row records into ProcessedChat / ProcessedMessage values"""

    def __init__(self, contacts: Optional[ContactBook] = None):
        self.contacts = contacts

    def handle_name(self, raw_handle: Optional[str]) -> str:
        if self.contacts is not None:
            name = self.contacts.lookup(raw_handle)
            if name:
                return name
        return format_handle_name(raw_handle)

    def chat_display_name(self, row: ChatRow) -> str:
        if not row.display_name and self.contacts is not None:
            name = self.contacts.lookup(row.chat_identifier)
            if name:
                return name
        return resolve_display_name(row.id, row.display_name, row.chat_identifier)

    def to_chat(self, row: ChatRow, participants: Optional[Iterable[str]] = None) -> ProcessedChat:
        return ProcessedChat(
            id=row.id,
            guid=row.guid,
            display_name=self.chat_display_name(row),
            is_group_chat=is_group_style(row.style),
            participants=[self.handle_name(p) for p in (participants or [])],
            chat_identifier=row.chat_identifier,
            service_name=row.service_name,
        )

    def to_message(
        self,
        row: MessageRow,
        attachments: Optional[List[ProcessedAttachment]] = None,
        chat_id: Optional[int] = None,
    ) -> ProcessedMessage:
        return ProcessedMessage(
            id=row.id,
            is_from_me=row.is_from_me,
            timestamp=apple_timestamp_to_datetime(row.date),
            handle_id=row.handle_id or 0,
            handle_name=self.handle_name(row.handle_name),
            chat_id=chat_id if chat_id is not None else (row.chat_id or 0),
            is_group_message=is_group_style(row.chat_style),
            service=row.service,
            subject=row.subject,
            has_attachments=row.has_attachments,
            raw_text=row.text,
            attributed_body=row.attributed_body,
            attachments=list(attachments or []),
        )

    def to_messages(
        self,
        rows: Iterable[MessageRow],
        attachments: Optional[Dict[int, List[ProcessedAttachment]]] = None,
        chat_id: Optional[int] = None,
    ) -> List[ProcessedMessage]:
        attachments = attachments or {}
        return [self.to_message(row, attachments.get(row.id), chat_id) for row in rows]

    @staticmethod
    def to_attachment(row: AttachmentRow) -> ProcessedAttachment:
        return ProcessedAttachment(
            id=row.id,
            filename=row.filename or 'Unknown',
            mime_type=row.mime_type or 'application/octet-stream',
            total_bytes=row.total_bytes or 0,
            is_sticker=row.is_sticker,
        )
