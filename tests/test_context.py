import pytest

from imessage_archive.archive import MessageArchive
from imessage_archive.config import ArchiveConfig


async def test_window_centred_on_target(archive, sample_db):
    ids = sample_db.direct_messages
    window = await archive.get_messages_around_message(sample_db.direct_chat, ids[15], 5)

    assert window.found
    assert window.target_index == 5
    assert window.messages[window.target_index].id == ids[15]
    assert [m.id for m in window.messages] == ids[10:21]


@pytest.mark.parametrize("position", [0, 2, 27, 29])
async def test_window_clipped_at_edges(archive, sample_db, position):
    ids = sample_db.direct_messages
    window = await archive.get_messages_around_message(sample_db.direct_chat, ids[position], 5)

    start = max(0, position - 5)
    assert [m.id for m in window.messages] == ids[start:position + 6]
    assert window.messages[window.target_index].id == ids[position]


@pytest.mark.parametrize("half_width", [0, 1, 14, 15, 100])
async def test_window_size(archive, sample_db, half_width):
    ids = sample_db.direct_messages
    window = await archive.get_messages_around_message(sample_db.direct_chat, ids[14], half_width)

    assert len(window.messages) == min(len(ids), half_width * 2 + 1)
    assert window.messages[window.target_index].id == ids[14]


async def test_window_is_chronological_across_timestamp_units(archive, sample_db):
    window = await archive.get_messages_around_message(sample_db.direct_chat, sample_db.direct_messages[10], 3)
    assert [m.text for m in window.messages] == [f"message {i:02d}" for i in range(7, 14)]


async def test_target_from_another_chat_falls_back(archive, sample_db, caplog):
    window = await archive.get_messages_around_message(sample_db.direct_chat, sample_db.dinner_message, 5)

    assert not window.found
    assert window.target_index == -1
    assert [m.id for m in window.messages] == sample_db.direct_messages
    assert "not found" in caplog.text


async def test_unknown_target_falls_back_to_configured_page(sample_db):
    archive = MessageArchive(ArchiveConfig(db_path=sample_db.path, page_size=5))
    await archive.open()
    try:
        window = await archive.get_messages_around_message(sample_db.direct_chat, 987654, 2)
        assert window.target_index == -1
        assert [m.id for m in window.messages] == sample_db.direct_messages[-5:]
    finally:
        await archive.close()


async def test_rich_text_target(archive, sample_db):
    window = await archive.get_messages_around_message(sample_db.group_chat, sample_db.hello_message, 1)
    assert [m.id for m in window.messages] == [
        sample_db.dinner_message,
        sample_db.hello_message,
        sample_db.unreadable_message,
    ]
    assert window.messages[window.target_index].text == "hello world"


async def test_default_half_width_from_config(sample_db):
    archive = MessageArchive(ArchiveConfig(db_path=sample_db.path, context_half_width=2))
    await archive.open()
    try:
        window = await archive.get_messages_around_message(sample_db.direct_chat, sample_db.direct_messages[10])
        assert len(window.messages) == 5
    finally:
        await archive.close()


async def test_negative_half_width(archive, sample_db):
    with pytest.raises(ValueError):
        await archive.get_messages_around_message(sample_db.direct_chat, sample_db.direct_messages[3], -1)
