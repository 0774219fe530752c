"""
Database health checks

Counts the conditions that make messages disappear from or degrade in the
normal query paths: messages with no chat, messages whose only body is an
attributedBody blob, and blobs the text heuristic cannot read.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import DecodeFailure
from .store import StoreAccessor
from .text_decoder import PrintableRun, printable_runs, recover_text

logger = logging.getLogger(__name__)

SCAN_BATCH_SIZE = 1000


@dataclass
class DiagnosticsReport:
    """Summary of one database's health"""
    database_path: Optional[str]
    database_size: int = 0
    tables: List[str] = field(default_factory=list)
    message_columns: List[str] = field(default_factory=list)
    total_messages: int = 0
    orphaned_messages: int = 0
    multi_chat_messages: int = 0
    rich_text_only_messages: int = 0
    unrecoverable_messages: int = 0
    unrecoverable_sample: List[int] = field(default_factory=list)
    total_chats: int = 0
    chats_without_handles: Optional[int] = None
    total_attachments: Optional[int] = None
    attachment_bytes: int = 0

    def lines(self) -> List[str]:
        """Human-readable report"""
        out = ["iMessage Database Diagnostics", ""]
        out.append(f"Database: {self.database_path}")
        out.append(f"    Total database size: {format_file_size(self.database_size)}")
        out.append(f"    Tables: {', '.join(self.tables)}")
        out.append("Message diagnostic data:")
        out.append(f"    Total messages: {self.total_messages}")
        if self.orphaned_messages > 0:
            out.append(f"    Messages not associated with a chat: {self.orphaned_messages}")
        if self.multi_chat_messages > 0:
            out.append(f"    Messages belonging to more than one chat: {self.multi_chat_messages}")
        out.append(f"    Messages stored only as rich text: {self.rich_text_only_messages}")
        if self.unrecoverable_messages > 0:
            sample = ", ".join(str(i) for i in self.unrecoverable_sample)
            out.append(f"    Rich text messages with no recoverable text: {self.unrecoverable_messages} (e.g. {sample})")
        out.append("Thread diagnostic data:")
        out.append(f"    Total chats: {self.total_chats}")
        if self.chats_without_handles:
            out.append(f"    Chats with no handles: {self.chats_without_handles}")
        if self.total_attachments is not None:
            out.append("Attachment diagnostic data:")
            out.append(f"    Total attachments: {self.total_attachments}")
            out.append(f"        Data referenced in table: {format_file_size(self.attachment_bytes)}")
        return out


def format_file_size(bytes_size: int) -> str:
    """Format file size in human readable format"""
    size = float(bytes_size)
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{size:.2f} TB"


async def _count(store: StoreAccessor, sql: str) -> int:
    return await store.scalar(sql, default=0)


async def run_diagnostics(store: StoreAccessor, sample_size: int = 10) -> DiagnosticsReport:
    """
    Inspect an opened database.

    Args:
        store: Connected store accessor
        sample_size: How many unrecoverable message ids to keep in the report

    Raises:
        QueryError: If the store is not open or a statement fails
    """
    schema = store.schema
    report = DiagnosticsReport(database_path=store.path)
    if store.path and os.path.exists(store.path):
        report.database_size = os.path.getsize(store.path)

    table_rows = await store.query("SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name")
    report.tables = [row[0] for row in table_rows]
    report.message_columns = sorted(schema.tables.get("message", set()))

    report.total_messages = await _count(store, "SELECT COUNT(*) FROM message")
    report.orphaned_messages = await _count(store, """
        SELECT COUNT(m.ROWID)
        FROM message m
        LEFT JOIN chat_message_join cmj ON m.ROWID = cmj.message_id
        WHERE cmj.chat_id IS NULL
    """)
    report.multi_chat_messages = await _count(store, """
        SELECT COUNT(*) FROM (
            SELECT cmj.message_id
            FROM chat_message_join cmj
            GROUP BY cmj.message_id
            HAVING COUNT(cmj.chat_id) > 1
        )
    """)
    report.total_chats = await _count(store, "SELECT COUNT(*) FROM chat")

    if schema.has_column("message", "attributedBody"):
        text = schema.column("m", "message", "text")
        report.rich_text_only_messages = await _count(store, f"""
            SELECT COUNT(*) FROM message m
            WHERE ({text} IS NULL OR TRIM({text}) = '')
            AND m.attributedBody IS NOT NULL
        """)
        await _scan_rich_text(store, report, sample_size)

    if schema.has_table("chat_handle_join"):
        report.chats_without_handles = await _count(store, """
            SELECT COUNT(DISTINCT c.ROWID)
            FROM chat c
            LEFT JOIN chat_handle_join chj ON c.ROWID = chj.chat_id
            WHERE chj.handle_id IS NULL
        """)

    if schema.has_table("attachment"):
        report.total_attachments = await _count(store, "SELECT COUNT(*) FROM attachment")
        if schema.has_column("attachment", "total_bytes"):
            report.attachment_bytes = await _count(
                store, "SELECT SUM(COALESCE(total_bytes, 0)) FROM attachment"
            )

    logger.info(
        "Diagnostics: %d messages, %d orphaned, %d rich-text only, %d unrecoverable",
        report.total_messages, report.orphaned_messages,
        report.rich_text_only_messages, report.unrecoverable_messages,
    )
    return report


async def _scan_rich_text(store: StoreAccessor, report: DiagnosticsReport, sample_size: int) -> None:
    text = store.schema.column("m", "message", "text")
    last_id = 0
    while True:
        rows = await store.query(f"""
            SELECT m.ROWID AS id, m.attributedBody AS attributedBody
            FROM message m
            WHERE m.ROWID > ?
            AND ({text} IS NULL OR TRIM({text}) = '')
            AND m.attributedBody IS NOT NULL
            ORDER BY m.ROWID
            LIMIT ?
        """, [last_id, SCAN_BATCH_SIZE])
        if not rows:
            break

        for row in rows:
            try:
                recover_text(None, row["attributedBody"])
            except DecodeFailure:
                report.unrecoverable_messages += 1
                if len(report.unrecoverable_sample) < sample_size:
                    report.unrecoverable_sample.append(row["id"])

        last_id = rows[-1]["id"]
        if len(rows) < SCAN_BATCH_SIZE:
            break


def describe_attributed_body(blob: Any) -> Dict[str, Any]:
    """
    Break an attributedBody blob down for offline analysis.

    Returns:
        Dict with the blob size, every printable run (offset, text, noise flag)
        and the text the decoder recovers, or None when it recovers nothing
    """
    if blob is None:
        return {'size': 0, 'runs': [], 'recovered': None}

    runs: List[PrintableRun] = printable_runs(blob)
    try:
        recovered = recover_text(None, blob)
    except DecodeFailure:
        recovered = None

    return {
        'size': len(blob),
        'runs': [{'offset': run.offset, 'text': run.text, 'is_noise': run.is_noise} for run in runs],
        'recovered': recovered,
    }
