import argparse
import asyncio
import sys

from cardsync.core.config import settings
from cardsync.core.container import DependencyContainer, NoteStoreConnection, get_media_resolver
from cardsync.core.exceptions.base import AppError
from cardsync.core.logging import setup_logging
from cardsync.domain.cards.locator import find_blocks
from cardsync.domain.cards.parser import parse_block
from cardsync.domain.cards.serializer import format_card


def parse_arguments():
    parser = argparse.ArgumentParser(description='Parse anki-cards blocks and synchronize them with Anki.')
    subparsers = parser.add_subparsers(dest='command', required=True)

    parse_cmd = subparsers.add_parser('parse', help='Print the cards of every block in a document')
    parse_cmd.add_argument('file', help='Document path relative to the vault')

    sync_cmd = subparsers.add_parser('sync', help='Synchronize one block with AnkiConnect')
    sync_cmd.add_argument('file', help='Document path relative to the vault')
    sync_cmd.add_argument('--block', type=int, default=-1, help='Index of the block to sync (default: last block)')

    status_cmd = subparsers.add_parser('status', help='Compare local and remote card counts')
    status_cmd.add_argument('file', help='Document path relative to the vault')

    parser.add_argument('--log-level', default=settings.log_level, help='Log level')
    return parser.parse_args()


async def read_blocks(path: str):
    document = await DependencyContainer.get_documents().read_text(path)
    return find_blocks(document)


async def run_parse(path: str) -> None:
    blocks = await read_blocks(path)
    if not blocks:
        print(f"No anki-cards block in {path}")
        return

    for index, location in enumerate(blocks):
        block = parse_block(location.inner)
        print(f"# Block {index}: {block.target_deck or '(no deck)'} ({len(block.cards)} cards)")
        for card in block.cards:
            print(format_card(card))
            print()


async def run_sync(path: str, block_index: int) -> None:
    blocks = await read_blocks(path)
    try:
        location = blocks[block_index]
    except IndexError:
        print(f"Block {block_index} not found in {path} ({len(blocks)} blocks)")
        sys.exit(1)

    service = await DependencyContainer.get_sync_service()
    report = await service.sync_block(path, location.inner, get_media_resolver(path), position_hint=location.start)
    print(
        f"Synchronized {len(report.cards)} cards into {report.deck}: "
        f"{report.created} created, {report.updated} updated, {report.skipped} skipped"
    )
    for anomaly in report.anomalies:
        print(f"  line {anomaly.line_number}: {anomaly.reason}")


async def run_status(path: str) -> None:
    service = await DependencyContainer.get_sync_service()
    for index, location in enumerate(await read_blocks(path)):
        block = parse_block(location.inner)
        status = await service.deck_status(block)
        print(
            f"Block {index} ({block.target_deck or '(no deck)'}): "
            f"{status['synchronized']}/{status['local']} synchronized, {status['remote']} cards in Anki"
        )


async def run(args) -> None:
    try:
        if args.command == 'parse':
            await run_parse(args.file)
        elif args.command == 'sync':
            await run_sync(args.file, args.block)
        elif args.command == 'status':
            await run_status(args.file)
    finally:
        await NoteStoreConnection.close()


def main():
    args = parse_arguments()
    setup_logging(args.log_level, settings.log_json)

    try:
        asyncio.run(run(args))
    except AppError as e:
        print(f"Error occurred: {e.message}")
        if e.details:
            print(f"Details: {e.details}")
        sys.exit(1)


if __name__ == "__main__":
    main()
