"""Jump-to-message: a window of a chat centred on one message"""

import logging

from .loader import MessageLoader, chunked
from .models import ContextWindow
from .pagination import MessagePager

logger = logging.getLogger(__name__)


class ContextLocator:
    """Finds a message in its chat's chronology and returns the messages around it"""

    def __init__(self, loader: MessageLoader, pager: MessagePager, fallback_page_size: int = 100):
        self.loader = loader
        self.pager = pager
        self.fallback_page_size = fallback_page_size

    async def locate(self, chat_id: int, target_message_id: int, half_width: int = 50) -> ContextWindow:
        """
        Load up to ``half_width`` messages on each side of the target.

        When the target is not part of the chat (or has no recoverable
        content) the most recent page is returned with ``target_index`` -1.

        Args:
            chat_id: Chat ROWID
            target_message_id: Message ROWID to centre on
            half_width: Messages to include before and after the target

        Returns:
            ContextWindow with chronological messages and the target's index

        Raises:
            ValueError: If half_width is negative
            QueryError: If the store rejects a query
        """
        if half_width < 0:
            raise ValueError("half_width must be non-negative")

        id_rows = await self.loader.store.query(*self.loader.queries.context_ids(chat_id))
        ordered_ids = list(dict.fromkeys(row["id"] for row in id_rows))
        logger.debug("Found %d messages in chat %s", len(ordered_ids), chat_id)

        try:
            position = ordered_ids.index(target_message_id)
        except ValueError:
            logger.warning(
                "Target message %s not found in chat %s, falling back to recent messages",
                target_message_id, chat_id,
            )
            page = await self.pager.get_page(chat_id, self.fallback_page_size, 0)
            return ContextWindow(messages=page.messages, target_index=-1)

        start = max(0, position - half_width)
        end = min(len(ordered_ids), position + half_width + 1)
        window_ids = ordered_ids[start:end]

        rows = []
        for chunk in chunked(window_ids):
            rows.extend(await self.loader.fetch_rows(*self.loader.queries.messages_by_ids(chat_id, chunk)))

        # Keep the id sequence's order, and one row per id
        by_id = {}
        for row in rows:
            by_id.setdefault(row.id, row)
        ordered_rows = [by_id[message_id] for message_id in window_ids if message_id in by_id]

        messages = await self.loader.process(ordered_rows, chat_id)
        target_index = position - start
        logger.info(
            "Loaded %d messages around %s (index %d of %d)",
            len(messages), target_message_id, target_index, len(ordered_ids),
        )
        return ContextWindow(messages=messages, target_index=target_index)
