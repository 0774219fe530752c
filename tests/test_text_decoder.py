import pytest

from imessage_archive.errors import DecodeFailure
from imessage_archive.text_decoder import (
    ATTACHMENT_PLACEHOLDER,
    EMPTY_PLACEHOLDER,
    RICH_TEXT_PLACEHOLDER,
    decode_message_text,
    extract_rich_text,
    is_placeholder,
    printable_runs,
    recover_text,
)

from .conftest import HELLO_WORLD_BLOB, UNREADABLE_BLOB


def test_plain_text_wins_and_is_trimmed():
    assert decode_message_text("  Hi there \n", HELLO_WORLD_BLOB) == "Hi there"


def test_blank_text_falls_through_to_blob():
    assert decode_message_text("   ", HELLO_WORLD_BLOB) == "hello world"


def test_blob_only_message():
    assert decode_message_text(None, HELLO_WORLD_BLOB) == "hello world"


def test_unreadable_blob_gives_rich_text_placeholder():
    assert decode_message_text(None, UNREADABLE_BLOB) == RICH_TEXT_PLACEHOLDER


def test_no_text_no_blob():
    assert decode_message_text(None, None, has_attachments=True) == ATTACHMENT_PLACEHOLDER
    assert decode_message_text(None, None) == EMPTY_PLACEHOLDER
    assert decode_message_text("", b"") == EMPTY_PLACEHOLDER


def test_noise_runs_are_skipped():
    blob = b"\x01streamtyped\x81\x84NSMutableAttributedString\x00\x84Coffee later\x86__kIMMessagePartAttributeName\x00"
    assert extract_rich_text(blob) == "Coffee later"


def test_longest_clean_run_is_chosen():
    blob = b"\x01short\x02a much longer run of text\x03tiny"
    assert extract_rich_text(blob) == "a much longer run of text"


def test_later_run_wins_a_tie():
    assert extract_rich_text(b"\x00first\x01later") == "later"


def test_run_must_exceed_four_characters():
    with pytest.raises(DecodeFailure):
        extract_rich_text(b"\x00abcd\x01wxyz")


def test_nsstring_quoted_fallback():
    blob = b'NSString "ok"'
    assert extract_rich_text(blob) == "ok"


def test_plist_string_fallback():
    blob = b"\x00<string>yo</string>\x00bplist00"
    # A clean printable run beats the plist fallback
    assert extract_rich_text(blob) == "<string>yo</string>"
    assert extract_rich_text(b"__x<string>yo</string>") == "yo"


def test_extract_rejects_empty():
    with pytest.raises(DecodeFailure):
        extract_rich_text(b"")
    with pytest.raises(DecodeFailure):
        extract_rich_text(None)


def test_accepts_bytes_like_and_str():
    assert extract_rich_text(bytearray(HELLO_WORLD_BLOB)) == "hello world"
    assert extract_rich_text(memoryview(HELLO_WORLD_BLOB)) == "hello world"
    assert extract_rich_text(HELLO_WORLD_BLOB.decode("latin-1")) == "hello world"


def test_recover_text_wraps_type_errors():
    with pytest.raises(DecodeFailure):
        recover_text(None, 12345)


def test_recover_text_without_sources():
    with pytest.raises(DecodeFailure):
        recover_text("  ", None)


def test_decode_never_raises_on_bad_blob():
    assert decode_message_text(None, 12345) == RICH_TEXT_PLACEHOLDER


def test_printable_runs_reports_offsets_and_noise():
    runs = printable_runs(HELLO_WORLD_BLOB)
    assert [(run.text, run.is_noise) for run in runs] == [("NSString", True), ("hello world", False)]
    assert runs[0].offset == 2
    assert HELLO_WORLD_BLOB[runs[1].offset:].startswith(b"hello world")


def test_is_placeholder():
    assert is_placeholder(RICH_TEXT_PLACEHOLDER)
    assert not is_placeholder("hello")
    assert not is_placeholder(None)
