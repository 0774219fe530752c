"""Shared row loading used by pagination, context lookup and search"""

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from .mapper import MessageMapper
from .models import AttachmentRow, MessageRow, ProcessedAttachment, ProcessedMessage
from .queries import QueryBuilder
from .store import StoreAccessor

logger = logging.getLogger(__name__)

# Stay well below SQLite's bound-variable limit
MAX_IN_PARAMS = 500


def chunked(values: Sequence[int], size: int = MAX_IN_PARAMS) -> Iterator[Sequence[int]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class MessageLoader:
    """Runs message queries and maps the rows, loading attachments only where flagged"""

    def __init__(self, store: StoreAccessor, mapper: MessageMapper, excluded_services: Sequence[str] = ()):
        self.store = store
        self.mapper = mapper
        self.excluded_services = tuple(excluded_services)

    @property
    def queries(self) -> QueryBuilder:
        # Rebuilt on each use: the schema changes when the store reopens
        return QueryBuilder(self.store.schema, self.excluded_services)

    async def fetch_rows(self, sql: str, params: Sequence) -> List[MessageRow]:
        return [MessageRow.from_row(row) for row in await self.store.query(sql, params)]

    async def attachments_for(self, message_ids: Iterable[int]) -> Dict[int, List[ProcessedAttachment]]:
        """Attachments grouped by message id"""
        ids = list(dict.fromkeys(message_ids))
        result: Dict[int, List[ProcessedAttachment]] = {}
        if not ids:
            return result

        for chunk in chunked(ids):
            statement = self.queries.attachments(chunk)
            if statement is None:
                return result
            for row in await self.store.query(*statement):
                attachment = AttachmentRow.from_row(row)
                result.setdefault(attachment.message_id, []).append(self.mapper.to_attachment(attachment))

        return result

    async def process(self, rows: Sequence[MessageRow], chat_id: Optional[int] = None) -> List[ProcessedMessage]:
        flagged = [row.id for row in rows if row.has_attachments]
        attachments = await self.attachments_for(flagged)
        if flagged:
            logger.debug("Loaded attachments for %d of %d flagged messages", len(attachments), len(flagged))
        return self.mapper.to_messages(rows, attachments, chat_id)
