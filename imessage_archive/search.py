"""
Full-history message search

Phase 1 asks SQLite for rows whose plain-text fields contain the term.
Phase 2 walks every remaining message, recovers its text (including
attributedBody-only rows, which SQL cannot see into) and matches that.
SQLite LIKE only folds ASCII case, so phase 2 also matches the subject,
sender and chat names itself.
The results are merged, de-duplicated and trimmed to the requested limit.

Phase 2 is a full scan: O(total messages). It only runs on explicit user
searches, never on a display path.
"""

import logging
from typing import List, Sequence, Set

from tqdm import tqdm

from .errors import DecodeFailure
from .loader import MessageLoader
from .models import MessageRow, ProcessedMessage
from .text_decoder import recover_text
from .timestamps import apple_seconds

logger = logging.getLogger(__name__)


def _sort_key(row: MessageRow):
    seconds = apple_seconds(row.date)
    return (seconds if seconds is not None else float("-inf"), row.id)


def _structured_fields(row: MessageRow):
    return (row.subject, row.handle_name, row.chat_identifier, row.chat_name)


def _unique(rows: Sequence[MessageRow]) -> List[MessageRow]:
    seen: Set[int] = set()
    unique = []
    for row in rows:
        if row.id not in seen:
            seen.add(row.id)
            unique.append(row)
    return unique


class SearchEngine:
    """Two-phase, case-insensitive substring search over the whole archive"""

    def __init__(self, loader: MessageLoader, batch_size: int = 1000, show_progress: bool = False):
        self.loader = loader
        self.batch_size = batch_size
        self.show_progress = show_progress

    async def search(self, term: str, limit: int = 100) -> List[ProcessedMessage]:
        """
        Search message text, subjects, senders and chat names.

        Args:
            term: Substring to look for, matched case-insensitively
            limit: Maximum number of results

        Returns:
            Matches, most recent first

        Raises:
            QueryError: If either phase's query fails; no partial results are returned
        """
        needle = term.strip() if term else ""
        if not needle or limit <= 0:
            return []

        logger.info("Searching for %r across all message history (limit %d)", needle, limit)

        direct = await self._structured_matches(needle, limit)
        logger.info("Phase 1: %d direct matches", len(direct))

        decoded = await self._decoded_matches(needle, {row.id for row in direct})
        logger.info("Phase 2: %d additional matches in recovered text", len(decoded))

        merged = _unique(direct + decoded)
        merged.sort(key=_sort_key, reverse=True)
        merged = merged[:limit]

        logger.info("Total results: %d, returning %d", len(direct) + len(decoded), len(merged))
        return await self.loader.process(merged)

    async def _structured_matches(self, needle: str, limit: int) -> List[MessageRow]:
        statement = self.loader.queries.search_structured(needle, limit)
        if statement is None:
            return []
        return _unique(await self.loader.fetch_rows(*statement))

    async def _decoded_matches(self, needle: str, exclude: Set[int]) -> List[MessageRow]:
        queries = self.loader.queries
        total = await self.loader.store.scalar(*queries.search_scan_count(), default=0)
        lowered = needle.lower()
        seen = set(exclude)
        matches = []
        last_id = 0

        with tqdm(total=total, desc="Scanning messages", unit="msg", disable=not self.show_progress) as progress:
            while True:
                batch = await self.loader.fetch_rows(*queries.search_scan_batch(last_id, self.batch_size))
                if not batch:
                    break

                for row in batch:
                    if row.id in seen:
                        continue
                    if any(value and lowered in value.lower() for value in _structured_fields(row)):
                        seen.add(row.id)
                        matches.append(row)
                        continue
                    try:
                        recovered = recover_text(row.text, row.attributed_body)
                    except DecodeFailure as exc:
                        logger.debug("Message %s not searchable: %s", row.id, exc)
                        continue
                    if lowered in recovered.lower():
                        seen.add(row.id)
                        matches.append(row)

                progress.update(len(batch))
                last_id = batch[-1].id
                if len(batch) < self.batch_size:
                    break

        return matches
