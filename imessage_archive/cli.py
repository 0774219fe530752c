#!/usr/bin/env python3
"""
iMessage Archive - command line entry point

Browse, page through and search a copy of the Messages database:

    imessage-archive --db-path ~/Desktop/chat.db --list-chats
    imessage-archive --chat 12 --limit 50 --offset 100
    imessage-archive --search "dinner" --limit 20 --timeout 30
    imessage-archive --chat 12 --around 48213 --context 10
    imessage-archive --diagnostics
    imessage-archive --dump-body 48213
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from datetime import datetime
from typing import Dict, List, Optional

from .archive import MessageArchive
from .config import ArchiveConfig, load_config
from .diagnostics import describe_attributed_body, run_diagnostics
from .errors import ArchiveError
from .models import ProcessedMessage


def format_timestamp(dt: datetime) -> str:
    """Format datetime for display"""
    return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def sender_name(message: ProcessedMessage) -> str:
    return "Me" if message.is_from_me else message.handle_name


def format_message_line(message: ProcessedMessage, chat_name: str, marker: str = "") -> str:
    text_preview = message.text[:80] + "..." if len(message.text) > 80 else message.text
    attachment_info = f" [{len(message.attachments)} attachments]" if message.attachments else ""
    return (
        f"{marker}[{format_timestamp(message.timestamp)}] {sender_name(message)} in {chat_name}: "
        f"{text_preview}{attachment_info}"
    )


def export_to_json(messages: List[ProcessedMessage], output_path: str):
    """Write messages to a JSON file"""
    print(f"Exporting {len(messages):,} messages to JSON...")
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump([message.to_dict() for message in messages], f, indent=2, ensure_ascii=False)
    print(f"Exported to: {output_path}")


async def _chat_names(archive: MessageArchive, messages: List[ProcessedMessage]) -> Dict[int, str]:
    names = {}
    for chat_id in dict.fromkeys(message.chat_id for message in messages):
        chat = await archive.get_chat(chat_id)
        names[chat_id] = chat.display_name if chat else f"Contact {chat_id}"
    return names


async def list_chats(archive: MessageArchive, limit: Optional[int]):
    """List all available chats"""
    chats = await archive.list_chats(limit)
    print("\nAvailable Chats:")
    print("-" * 50)

    for chat in chats:
        info = await archive.get_chat_info(chat.id)
        kind = "group" if chat.is_group_chat else "individual"
        if info.last_message_date:
            last = format_timestamp(info.last_message_date)
            print(f"ID: {chat.id:3d} | {chat.display_name} ({kind}, {info.message_count} messages, Last: {last})")
        else:
            print(f"ID: {chat.id:3d} | {chat.display_name} ({kind}, No messages)")


def print_messages(messages: List[ProcessedMessage], names: Dict[int, str], target_id: Optional[int] = None):
    for message in messages:
        marker = ">> " if message.id == target_id else ""
        print(format_message_line(message, names.get(message.chat_id, f"Contact {message.chat_id}"), marker))


async def run(args: argparse.Namespace, config: ArchiveConfig):
    async with MessageArchive(config) as archive:
        print("Connecting to iMessage database...")
        await archive.open(config.db_path)

        if args.diagnostics:
            report = await run_diagnostics(archive.store)
            for line in report.lines():
                print(line)
            return

        if args.dump_body is not None:
            blob = await archive.get_raw_attributed_body(args.dump_body)
            if blob is None:
                print(f"Message {args.dump_body} has no attributedBody")
                return
            description = describe_attributed_body(blob)
            print(f"attributedBody of message {args.dump_body}: {description['size']} bytes")
            for run_info in description['runs']:
                noise = " (noise)" if run_info['is_noise'] else ""
                print(f"  @{run_info['offset']:5d}: {run_info['text']!r}{noise}")
            print(f"Recovered text: {description['recovered']!r}")
            return

        if args.list_chats:
            await list_chats(archive, args.limit)
            return

        if args.search:
            print(f"Searching for {args.search!r}...")
            messages = await archive.search_messages(args.search, args.limit, args.timeout)
            target_id = None
        elif args.around is not None:
            if args.chat is None:
                raise ValueError("--around requires --chat")
            window = await archive.get_messages_around_message(args.chat, args.around, args.context)
            if not window.found:
                print(f"Message {args.around} not found in chat {args.chat}, showing recent messages")
            messages = window.messages
            target_id = args.around
        elif args.chat is not None:
            print(f"Fetching messages for chat ID: {args.chat}")
            messages = await archive.get_messages(args.chat, args.limit, args.offset)
            target_id = None
        else:
            print("Nothing to do: use --list-chats, --chat, --search, --diagnostics or --dump-body")
            return

        if not messages:
            print("No messages found.")
            return

        print(f"Found {len(messages):,} messages")

        if args.export_json:
            export_to_json(messages, args.export_json)
            return

        print_messages(messages, await _chat_names(archive, messages), target_id)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="iMessage Archive - browse and search a Messages database")
    parser.add_argument("--db-path", "-d", help="Path to chat.db file (default: IMESSAGE_DB_PATH or ~/Library/Messages/chat.db)")
    parser.add_argument("--vcf-path", help="Path to VCF (vCard) file for contact name resolution")
    parser.add_argument("--region", help="Country code for phone number parsing (default: US)")
    parser.add_argument("--list-chats", action="store_true", help="List chats that have readable messages")
    parser.add_argument("--chat", "-c", type=int, help="Chat ID to read")
    parser.add_argument("--limit", "-l", type=int, help="Page size, search result limit or chat list limit")
    parser.add_argument("--offset", type=int, default=0, help="Messages to skip back from the newest (default: 0)")
    parser.add_argument("--search", "-s", help="Search all message history for a term")
    parser.add_argument("--around", type=int, help="Show messages around this message ID (requires --chat)")
    parser.add_argument("--context", type=int, help="Messages on each side of --around (default: 50)")
    parser.add_argument("--timeout", type=float, help="Soft search timeout in seconds")
    parser.add_argument("--export-json", "-j", help="Export the selected messages to a JSON file")
    parser.add_argument("--diagnostics", action="store_true", help="Report database health")
    parser.add_argument("--dump-body", type=int, metavar="MESSAGE_ID",
                        help="Show the printable runs of a message's attributedBody")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
        overrides = {}
        if args.db_path:
            overrides['db_path'] = args.db_path
        if args.vcf_path:
            overrides['vcf_path'] = args.vcf_path
        if args.region:
            overrides['region'] = args.region
        if args.verbose:
            overrides['log_level'] = "DEBUG"
            overrides['show_progress'] = True
        config = dataclasses.replace(config, **overrides)

        logging.basicConfig(
            level=getattr(logging, config.log_level),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        asyncio.run(run(args, config))

    except FileNotFoundError as e:
        print(f"Error: {e}")
        print("Check the --vcf-path / IMESSAGE_VCF_PATH setting.")
        sys.exit(1)
    except (ArchiveError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
