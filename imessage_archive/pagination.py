"""Offset-based, backward-in-time paging through a chat thread"""

import logging
from typing import List

from .loader import MessageLoader
from .models import MessagePage, ProcessedMessage

logger = logging.getLogger(__name__)


class MessagePager:
    """Loads pages newest-first from the store and hands them back oldest-first"""

    def __init__(self, loader: MessageLoader):
        self.loader = loader

    async def get_page(self, chat_id: int, page_size: int, offset: int = 0) -> MessagePage:
        """
        Load one page of a chat.

        Offset 0 is the most recent ``page_size`` messages; increasing the
        offset walks back in time. Within the page messages are chronological.

        Raises:
            ValueError: If page_size or offset is negative
            QueryError: If the store rejects the query
        """
        if page_size < 0 or offset < 0:
            raise ValueError("page_size and offset must be non-negative")
        if page_size == 0:
            return MessagePage(messages=[], offset=offset, page_size=0)

        logger.debug("Loading messages for chat %s (limit: %s, offset: %s)", chat_id, page_size, offset)
        rows = await self.loader.fetch_rows(*self.loader.queries.page(chat_id, page_size, offset))
        messages = await self.loader.process(rows, chat_id)
        messages.reverse()

        logger.info("Loaded %d messages for chat %s", len(messages), chat_id)
        return MessagePage(messages=messages, offset=offset, page_size=page_size)


class ThreadCursor:
    """Remembers how far back a thread has been loaded"""

    def __init__(self, pager: MessagePager, chat_id: int, page_size: int = 100):
        self.pager = pager
        self.chat_id = chat_id
        self.page_size = page_size
        self.offset = 0
        self.has_more = True

    async def load_older(self) -> List[ProcessedMessage]:
        """Next older page in chronological order, or [] once the thread is exhausted"""
        if not self.has_more:
            return []
        page = await self.pager.get_page(self.chat_id, self.page_size, self.offset)
        self.offset = page.next_offset
        self.has_more = page.has_more
        return page.messages

    def reset(self) -> None:
        self.offset = 0
        self.has_more = True
