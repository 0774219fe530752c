"""
SQL for the Messages schema

Statements are assembled per opened database: columns that a schema version
lacks are replaced with NULL and joins against absent optional tables are
dropped, so the same call works on old and new chat.db files. Only column
and table names known to this module are interpolated; every value is a
bound parameter.
"""

from typing import Any, List, Optional, Sequence, Tuple

from .store import SchemaInfo
from .timestamps import normalized_seconds_sql

Statement = Tuple[str, List[Any]]


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally"""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def placeholders(count: int) -> str:
    return ",".join("?" * count)


class QueryBuilder:
    """Builds statements against one opened database"""

    def __init__(self, schema: SchemaInfo, excluded_services: Sequence[str] = ()):
        self.schema = schema
        self.excluded_services = tuple(excluded_services)

    # -- building blocks -------------------------------------------------

    def _m(self, column: str) -> str:
        return self.schema.column("m", "message", column)

    def _c(self, column: str) -> str:
        return self.schema.column("c", "chat", column)

    @property
    def _joins_handle(self) -> bool:
        return (
            self.schema.has_column("handle", "id")
            and self.schema.has_column("message", "handle_id")
        )

    @property
    def _date(self) -> str:
        return normalized_seconds_sql(self._m("date"))

    def _message_columns(self) -> str:
        handle_name = "h.id" if self._joins_handle else "NULL"
        return f"""
            m.ROWID AS id,
            {self._m('text')} AS text,
            {self._m('attributedBody')} AS attributedBody,
            {self._m('is_from_me')} AS is_from_me,
            {self._m('date')} AS date,
            {self._m('handle_id')} AS handle_id,
            {handle_name} AS handle_name,
            {self._m('service')} AS message_service,
            {self._m('subject')} AS subject,
            {self._m('cache_has_attachments')} AS cache_has_attachments,
            c.ROWID AS chat_id,
            {self._c('style')} AS chat_style,
            {self._c('chat_identifier')} AS chat_identifier,
            {self._c('display_name')} AS chat_name"""

    def _message_from(self) -> str:
        sql = """
            FROM message m
            JOIN chat_message_join cmj ON cmj.message_id = m.ROWID
            JOIN chat c ON c.ROWID = cmj.chat_id"""
        if self._joins_handle:
            sql += """
            LEFT JOIN handle h ON h.ROWID = m.handle_id"""
        return sql

    def _recoverable(self) -> str:
        return f"({self._m('text')} IS NOT NULL OR {self._m('attributedBody')} IS NOT NULL)"

    def _service_filter(self) -> Tuple[str, List[Any]]:
        if not self.excluded_services:
            return "1=1", []
        service = self._m('service')
        return (
            f"({service} IS NULL OR {service} NOT IN ({placeholders(len(self.excluded_services))}))",
            list(self.excluded_services),
        )

    def _order(self, direction: str) -> str:
        return f"{self._date} {direction}, m.ROWID {direction}"

    # -- chats -----------------------------------------------------------

    def chats(self, limit: Optional[int] = None) -> Statement:
        service_sql, params = self._service_filter()
        sql = f"""
            SELECT
                c.ROWID AS id,
                {self._c('guid')} AS guid,
                {self._c('display_name')} AS display_name,
                {self._c('chat_identifier')} AS chat_identifier,
                {self._c('service_name')} AS service_name,
                {self._c('style')} AS style
            FROM chat c
            WHERE EXISTS (
                SELECT 1 FROM chat_message_join cmj
                JOIN message m ON cmj.message_id = m.ROWID
                WHERE cmj.chat_id = c.ROWID
                AND {service_sql}
                AND {self._recoverable()}
            )
            ORDER BY c.ROWID DESC"""
        if limit:
            sql += "\n            LIMIT ?"
            params.append(limit)
        return sql, params

    def chat(self, chat_id: int) -> Statement:
        sql = f"""
            SELECT
                c.ROWID AS id,
                {self._c('guid')} AS guid,
                {self._c('display_name')} AS display_name,
                {self._c('chat_identifier')} AS chat_identifier,
                {self._c('service_name')} AS service_name,
                {self._c('style')} AS style
            FROM chat c
            WHERE c.ROWID = ?"""
        return sql, [chat_id]

    def participants(self, chat_ids: Sequence[int]) -> Optional[Statement]:
        """Participant handles for several chats, or None when the schema has no participant tables"""
        if not (self.schema.has_table("chat_handle_join") and self.schema.has_column("handle", "id")):
            return None
        sql = f"""
            SELECT chj.chat_id AS chat_id, h.id AS handle_name
            FROM chat_handle_join chj
            JOIN handle h ON h.ROWID = chj.handle_id
            WHERE chj.chat_id IN ({placeholders(len(chat_ids))})
            ORDER BY chj.chat_id, h.ROWID"""
        return sql, list(chat_ids)

    def chat_info(self, chat_id: int) -> Statement:
        service_sql, service_params = self._service_filter()
        sql = f"""
            SELECT COUNT(m.ROWID) AS message_count, MAX({self._date}) AS last_seconds
            FROM message m
            JOIN chat_message_join cmj ON m.ROWID = cmj.message_id
            WHERE cmj.chat_id = ?
            AND {service_sql}
            AND {self._recoverable()}"""
        return sql, [chat_id] + service_params

    # -- messages --------------------------------------------------------

    def page(self, chat_id: int, limit: int, offset: int) -> Statement:
        service_sql, service_params = self._service_filter()
        sql = f"""
            SELECT {self._message_columns()}
            {self._message_from()}
            WHERE cmj.chat_id = ?
            AND {service_sql}
            AND {self._recoverable()}
            ORDER BY {self._order('DESC')}
            LIMIT ? OFFSET ?"""
        return sql, [chat_id] + service_params + [limit, offset]

    def context_ids(self, chat_id: int) -> Statement:
        service_sql, service_params = self._service_filter()
        sql = f"""
            SELECT m.ROWID AS id
            {self._message_from()}
            WHERE cmj.chat_id = ?
            AND {service_sql}
            AND {self._recoverable()}
            ORDER BY {self._order('ASC')}"""
        return sql, [chat_id] + service_params

    def messages_by_ids(self, chat_id: int, message_ids: Sequence[int]) -> Statement:
        sql = f"""
            SELECT {self._message_columns()}
            {self._message_from()}
            WHERE cmj.chat_id = ?
            AND m.ROWID IN ({placeholders(len(message_ids))})
            ORDER BY {self._order('ASC')}"""
        return sql, [chat_id] + list(message_ids)

    def raw_body(self, message_id: int) -> Statement:
        return f"SELECT {self._m('attributedBody')} AS attributedBody FROM message m WHERE m.ROWID = ?", [message_id]

    def attachments(self, message_ids: Sequence[int]) -> Optional[Statement]:
        if not (self.schema.has_table("attachment") and self.schema.has_table("message_attachment_join")):
            return None

        def a(column):
            return self.schema.column("a", "attachment", column)

        sql = f"""
            SELECT
                a.ROWID AS id,
                maj.message_id AS message_id,
                {a('filename')} AS filename,
                {a('mime_type')} AS mime_type,
                {a('total_bytes')} AS total_bytes,
                {a('is_sticker')} AS is_sticker
            FROM attachment a
            JOIN message_attachment_join maj ON a.ROWID = maj.attachment_id
            WHERE maj.message_id IN ({placeholders(len(message_ids))})
            ORDER BY maj.message_id, a.ROWID"""
        return sql, list(message_ids)

    # -- search ----------------------------------------------------------

    def search_fields(self) -> List[str]:
        """Plain-text columns matched by the structured search phase"""
        fields = [
            self._m('text'),
            self._m('subject'),
            self._m('associated_message_guid'),
        ]
        if self._joins_handle:
            fields.append("h.id")
        fields += [self._c('chat_identifier'), self._c('display_name')]
        return [f for f in fields if f != "NULL"]

    def search_structured(self, term: str, limit: int) -> Optional[Statement]:
        fields = self.search_fields()
        if not fields:
            return None
        pattern = f"%{escape_like(term)}%"
        matches = " OR\n                ".join(f"{f} LIKE ? ESCAPE '\\'" for f in fields)
        # One row per message before LIMIT; SQLite takes the bare columns
        # from the row holding MIN(c.ROWID)
        service_sql, service_params = self._service_filter()
        sql = f"""
            SELECT {self._message_columns()},
                   MIN(c.ROWID) AS first_chat_id
            {self._message_from()}
            WHERE (
                {matches}
            )
            AND {service_sql}
            GROUP BY m.ROWID
            ORDER BY {self._order('DESC')}
            LIMIT ?"""
        return sql, [pattern] * len(fields) + service_params + [limit]

    def search_scan_count(self) -> Statement:
        service_sql, service_params = self._service_filter()
        sql = f"""
            SELECT COUNT(*)
            {self._message_from()}
            WHERE {service_sql}
            AND {self._recoverable()}"""
        return sql, service_params

    def search_scan_batch(self, after_id: int, batch_size: int) -> Statement:
        service_sql, service_params = self._service_filter()
        sql = f"""
            SELECT {self._message_columns()}
            {self._message_from()}
            WHERE m.ROWID > ?
            AND {service_sql}
            AND {self._recoverable()}
            ORDER BY m.ROWID ASC
            LIMIT ?"""
        return sql, [after_id] + service_params + [batch_size]
