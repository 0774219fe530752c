"""
iMessage Archive - core query operations

MessageArchive is the entry point for reading a copy of an Apple Messages
``chat.db``. It owns one StoreAccessor (one read-only connection) and wires
the paging, context and search components to it.

Typical use::

    async with MessageArchive(config) as archive:
        await archive.open("~/Desktop/chat.db")
        chats = await archive.list_chats(limit=50)
        page = await archive.get_messages(chats[0].id, limit=100, offset=0)
        hits = await archive.search_messages("dinner", limit=20)
        window = await archive.get_messages_around_message(hits[0].chat_id, hits[0].id, 25)
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set

from .config import ArchiveConfig
from .contacts import ContactBook
from .context import ContextLocator
from .errors import QueryTimeout
from .loader import MessageLoader, chunked
from .mapper import MessageMapper
from .models import ChatInfo, ChatRow, ContextWindow, MessagePage, ProcessedAttachment, ProcessedChat, ProcessedMessage
from .pagination import MessagePager, ThreadCursor
from .search import SearchEngine
from .store import StoreAccessor
from .timestamps import apple_timestamp_to_datetime

logger = logging.getLogger(__name__)


class MessageArchive:
    """Read-only view over one Messages database"""

    def __init__(
        self,
        config: Optional[ArchiveConfig] = None,
        store: Optional[StoreAccessor] = None,
        contacts: Optional[ContactBook] = None,
    ):
        self.config = config or ArchiveConfig()
        self.store = store or StoreAccessor()

        if contacts is None and self.config.vcf_path:
            contacts = ContactBook.from_vcf(self.config.vcf_path, self.config.region)
        self.contacts = contacts

        self.mapper = MessageMapper(contacts)
        self.loader = MessageLoader(self.store, self.mapper, self.config.excluded_services)
        self.pager = MessagePager(self.loader)
        self.locator = ContextLocator(self.loader, self.pager, fallback_page_size=self.config.page_size)
        self.search_engine = SearchEngine(
            self.loader,
            batch_size=self.config.search_batch_size,
            show_progress=self.config.show_progress,
        )
        # Searches that outlived a soft timeout
        self._background: Set[asyncio.Task] = set()

    # -- lifecycle -------------------------------------------------------

    async def open(self, path: Optional[str] = None) -> None:
        """Open ``path`` (default: the configured database), closing any open one"""
        await self.store.open(path or self.config.db_path)

    async def close(self) -> None:
        await self.store.close()

    async def __aenter__(self) -> "MessageArchive":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    @property
    def is_connected(self) -> bool:
        return self.store.is_connected

    @property
    def database_path(self) -> Optional[str]:
        return self.store.path

    # -- chats -----------------------------------------------------------

    async def list_chats(self, limit: Optional[int] = None) -> List[ProcessedChat]:
        """
        List conversations that contain at least one readable message.

        Args:
            limit: Maximum number of chats, newest first; None for all

        Returns:
            ProcessedChat list with display names and participants resolved
        """
        if limit is not None and limit < 0:
            raise ValueError("limit must be non-negative")
        if limit == 0:
            return []

        rows = [ChatRow.from_row(row) for row in await self.store.query(*self.loader.queries.chats(limit))]
        participants = await self._participants([row.id for row in rows])
        chats = [self.mapper.to_chat(row, participants.get(row.id)) for row in rows]

        group_chats = sum(1 for chat in chats if chat.is_group_chat)
        logger.info("Loaded %d chats (%d group, %d individual)", len(chats), group_chats, len(chats) - group_chats)
        return chats

    async def get_chat(self, chat_id: int) -> Optional[ProcessedChat]:
        rows = await self.store.query(*self.loader.queries.chat(chat_id))
        if not rows:
            return None
        row = ChatRow.from_row(rows[0])
        participants = await self._participants([chat_id])
        return self.mapper.to_chat(row, participants.get(chat_id))

    async def get_chat_participants(self, chat_id: int) -> List[str]:
        """Formatted participant handles of one chat"""
        participants = await self._participants([chat_id])
        return [self.mapper.handle_name(p) for p in participants.get(chat_id, [])]

    async def get_chat_info(self, chat_id: int) -> ChatInfo:
        rows = await self.store.query(*self.loader.queries.chat_info(chat_id))
        if not rows:
            return ChatInfo(message_count=0)
        row = rows[0]
        last_seconds = row["last_seconds"]
        return ChatInfo(
            message_count=row["message_count"] or 0,
            last_message_date=apple_timestamp_to_datetime(last_seconds) if last_seconds is not None else None,
        )

    async def get_last_message_for_chat(self, chat_id: int) -> Optional[ProcessedMessage]:
        page = await self.pager.get_page(chat_id, 1, 0)
        return page.messages[0] if page.messages else None

    async def get_chat_summary(self, chat_id: int) -> Optional[ProcessedChat]:
        """Chat with message count and last message filled in"""
        chat = await self.get_chat(chat_id)
        if chat is None:
            return None
        info = await self.get_chat_info(chat_id)
        chat.message_count = info.message_count
        chat.last_message = await self.get_last_message_for_chat(chat_id)
        return chat

    async def _participants(self, chat_ids: List[int]) -> Dict[int, List[str]]:
        participants: Dict[int, List[str]] = {}
        for chunk in chunked(chat_ids):
            statement = self.loader.queries.participants(chunk)
            if statement is None:
                break
            for row in await self.store.query(*statement):
                participants.setdefault(row["chat_id"], []).append(row["handle_name"])
        return participants

    # -- messages --------------------------------------------------------

    async def get_messages(self, chat_id: int, limit: Optional[int] = None, offset: int = 0) -> List[ProcessedMessage]:
        """One page of a chat in chronological order; offset counts back from the newest message"""
        page = await self.get_page(chat_id, limit, offset)
        return page.messages

    async def get_page(self, chat_id: int, limit: Optional[int] = None, offset: int = 0) -> MessagePage:
        return await self.pager.get_page(chat_id, limit if limit is not None else self.config.page_size, offset)

    def thread_cursor(self, chat_id: int, page_size: Optional[int] = None) -> ThreadCursor:
        return ThreadCursor(self.pager, chat_id, page_size or self.config.page_size)

    async def get_messages_around_message(
        self,
        chat_id: int,
        message_id: int,
        context_half_width: Optional[int] = None,
    ) -> ContextWindow:
        """Messages on both sides of ``message_id``; target_index is -1 when it was not found"""
        half_width = self.config.context_half_width if context_half_width is None else context_half_width
        return await self.locator.locate(chat_id, message_id, half_width)

    async def get_attachments_for_message(self, message_id: int) -> List[ProcessedAttachment]:
        attachments = await self.loader.attachments_for([message_id])
        return attachments.get(message_id, [])

    async def get_raw_attributed_body(self, message_id: int) -> Optional[bytes]:
        """Untouched attributedBody blob, for offline analysis of rows the decoder misses"""
        rows = await self.store.query(*self.loader.queries.raw_body(message_id))
        if not rows:
            return None
        return rows[0]["attributedBody"]

    # -- search ----------------------------------------------------------

    async def search_messages(
        self,
        term: str,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[ProcessedMessage]:
        """
        Search the whole history for ``term``.

        A timeout (argument or configured) is soft: on expiry QueryTimeout is
        raised but the scan keeps running in the background until it ends.

        Raises:
            QueryError: If the search fails
            QueryTimeout: If the timeout expired first
        """
        limit = self.config.search_limit if limit is None else limit
        timeout = self.config.search_timeout if timeout is None else timeout

        if timeout is None:
            return await self.search_engine.search(term, limit)

        task = asyncio.ensure_future(self.search_engine.search(term, limit))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            self._background.add(task)
            task.add_done_callback(self._finish_background)
            raise QueryTimeout(f"Search for {term!r} timed out after {timeout}s; the scan is still running")

    def _finish_background(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background search failed after timeout: %s", exc)
        else:
            logger.info("Background search finished after timeout with %d results", len(task.result()))
