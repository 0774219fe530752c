import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest
import pytest_asyncio

from imessage_archive.archive import MessageArchive
from imessage_archive.config import ArchiveConfig
from imessage_archive.timestamps import datetime_to_apple_timestamp

SCHEMA = """
CREATE TABLE handle (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL,
    service TEXT
);
CREATE TABLE chat (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    guid TEXT,
    style INTEGER,
    chat_identifier TEXT,
    service_name TEXT,
    display_name TEXT
);
CREATE TABLE message (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    guid TEXT,
    text TEXT,
    attributedBody BLOB,
    handle_id INTEGER DEFAULT 0,
    service TEXT,
    subject TEXT,
    date INTEGER,
    is_from_me INTEGER DEFAULT 0,
    cache_has_attachments INTEGER DEFAULT 0,
    associated_message_guid TEXT
);
CREATE TABLE chat_message_join (
    chat_id INTEGER,
    message_id INTEGER,
    PRIMARY KEY (chat_id, message_id)
);
CREATE TABLE chat_handle_join (
    chat_id INTEGER,
    handle_id INTEGER
);
CREATE TABLE attachment (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    filename TEXT,
    mime_type TEXT,
    total_bytes INTEGER,
    is_sticker INTEGER DEFAULT 0
);
CREATE TABLE message_attachment_join (
    message_id INTEGER,
    attachment_id INTEGER
);
"""

BASE_TIME = datetime(2023, 1, 1, 12, 0, tzinfo=timezone.utc)

# Scenario blob: "hello world" only inside the archived NSString
HELLO_WORLD_BLOB = b"\x04\x0bNSString\x01\x94\x84\x01+\x0bhello world\x86\x84"

# Only archive noise, nothing the heuristic can recover
UNREADABLE_BLOB = b"\x04\x0bNSString\x01\x94\x84\x01+\x03hi\x86"


def at(minutes: int, nanoseconds: bool = True) -> int:
    return datetime_to_apple_timestamp(BASE_TIME + timedelta(minutes=minutes), nanoseconds=nanoseconds)


class MessagesDB:
    """Writes a small chat.db with the Messages schema"""

    def __init__(self, path, schema: str = SCHEMA):
        self.path = str(path)
        self.conn = sqlite3.connect(self.path)
        self.conn.executescript(schema)
        self.conn.commit()

    def close(self):
        self.conn.close()

    def _insert(self, sql: str, params: Sequence) -> int:
        cursor = self.conn.execute(sql, tuple(params))
        self.conn.commit()
        return cursor.lastrowid

    def add_handle(self, identifier: str, service: str = "iMessage") -> int:
        return self._insert("INSERT INTO handle (id, service) VALUES (?, ?)", (identifier, service))

    def add_chat(self, identifier: Optional[str] = None, display_name: Optional[str] = None,
                 style: int = 45, service: str = "iMessage", handles: Sequence[int] = ()) -> int:
        chat_id = self._insert(
            "INSERT INTO chat (guid, style, chat_identifier, service_name, display_name) VALUES (?, ?, ?, ?, ?)",
            (f"{service};-;{identifier}", style, identifier, service, display_name),
        )
        for handle_id in handles:
            self._insert("INSERT INTO chat_handle_join (chat_id, handle_id) VALUES (?, ?)", (chat_id, handle_id))
        return chat_id

    def add_message(self, chat_id: Optional[int], text: Optional[str] = None, body: Optional[bytes] = None,
                    date: Optional[int] = 0, handle_id: int = 0, is_from_me: bool = False,
                    service: str = "iMessage", subject: Optional[str] = None,
                    attachments: Sequence[Dict] = (), extra_chats: Sequence[int] = ()) -> int:
        message_id = self._insert(
            """INSERT INTO message (guid, text, attributedBody, handle_id, service, subject, date,
                                    is_from_me, cache_has_attachments)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (None, text, body, handle_id, service, subject, date, int(is_from_me), int(bool(attachments))),
        )
        self.conn.execute("UPDATE message SET guid = ? WHERE ROWID = ?", (f"msg-{message_id}", message_id))
        self.conn.commit()
        for target in ([chat_id] if chat_id is not None else []) + list(extra_chats):
            self._insert("INSERT INTO chat_message_join (chat_id, message_id) VALUES (?, ?)", (target, message_id))
        for attachment in attachments:
            attachment_id = self._insert(
                "INSERT INTO attachment (filename, mime_type, total_bytes, is_sticker) VALUES (?, ?, ?, ?)",
                (attachment.get('filename'), attachment.get('mime_type'),
                 attachment.get('total_bytes'), int(attachment.get('is_sticker', False))),
            )
            self._insert(
                "INSERT INTO message_attachment_join (message_id, attachment_id) VALUES (?, ?)",
                (message_id, attachment_id),
            )
        return message_id


@dataclass
class SampleData:
    path: str
    alice_handle: int
    bob_handle: int
    direct_chat: int
    group_chat: int
    empty_chat: int
    direct_messages: List[int] = field(default_factory=list)
    dinner_message: int = 0
    hello_message: int = 0
    unreadable_message: int = 0
    photo_message: int = 0
    orphan_message: int = 0


@pytest.fixture
def messages_db(tmp_path):
    db = MessagesDB(tmp_path / "chat.db")
    yield db
    db.close()


@pytest.fixture
def sample_db(messages_db) -> SampleData:
    """
    Two conversations:

    - a one-to-one chat with Alice holding 30 numbered messages a minute
      apart, every fifth one stored with a seconds timestamp instead of
      nanoseconds
    - a group chat whose messages exercise the text recovery paths
    """
    db = messages_db
    alice = db.add_handle("+15551234567")
    bob = db.add_handle("bob@example.com")

    direct = db.add_chat(identifier="+15551234567", style=45, handles=[alice])
    group = db.add_chat(identifier="chat123456", display_name="Family", style=43, handles=[alice, bob])
    empty = db.add_chat(identifier="+15559990000", style=45)

    data = SampleData(
        path=db.path,
        alice_handle=alice,
        bob_handle=bob,
        direct_chat=direct,
        group_chat=group,
        empty_chat=empty,
    )

    for i in range(30):
        data.direct_messages.append(db.add_message(
            direct,
            text=f"message {i:02d}",
            date=at(i, nanoseconds=(i % 5 != 0)),
            handle_id=0 if i % 2 else alice,
            is_from_me=bool(i % 2),
        ))

    data.dinner_message = db.add_message(group, text="Dinner at eight?", date=at(100), handle_id=bob)
    data.hello_message = db.add_message(group, body=HELLO_WORLD_BLOB, date=at(101), handle_id=alice)
    data.unreadable_message = db.add_message(group, body=UNREADABLE_BLOB, date=at(102), handle_id=bob)
    data.photo_message = db.add_message(
        group,
        text="look at this",
        date=at(103),
        is_from_me=True,
        attachments=[
            {'filename': "~/Library/Messages/Attachments/ab/IMG_0001.HEIC", 'mime_type': "image/heic",
             'total_bytes': 123456},
            {'filename': None, 'mime_type': None, 'total_bytes': None, 'is_sticker': True},
        ],
    )
    # Neither text nor blob: never listed
    db.add_message(empty, date=at(104))
    data.orphan_message = db.add_message(None, text="dinner orphan", date=at(105))

    return data


@pytest_asyncio.fixture
async def archive(sample_db):
    archive = MessageArchive(ArchiveConfig(db_path=sample_db.path, search_batch_size=7))
    await archive.open()
    yield archive
    await archive.close()
