"""Read-only query and text-recovery engine for Apple Messages databases."""

from .archive import MessageArchive
from .config import ArchiveConfig, load_config
from .contacts import ContactBook
from .errors import ArchiveError, DatabaseConnectionError, DecodeFailure, QueryError, QueryTimeout
from .models import ChatInfo, ContextWindow, MessagePage, ProcessedAttachment, ProcessedChat, ProcessedMessage
from .store import StoreAccessor
from .text_decoder import decode_message_text, extract_rich_text
from .timestamps import apple_timestamp_to_datetime

__version__ = "0.1.0"

__all__ = [
    "MessageArchive",
    "ArchiveConfig",
    "load_config",
    "ContactBook",
    "StoreAccessor",
    "ArchiveError",
    "DatabaseConnectionError",
    "QueryError",
    "QueryTimeout",
    "DecodeFailure",
    "ChatInfo",
    "ContextWindow",
    "MessagePage",
    "ProcessedAttachment",
    "ProcessedChat",
    "ProcessedMessage",
    "decode_message_text",
    "extract_rich_text",
    "apple_timestamp_to_datetime",
]
