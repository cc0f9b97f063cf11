"""CLI entry point for mailwire."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import Config, load_config
from .exceptions import MailwireError
from .mailbox import Mailbox

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("mailwire")


def add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add common arguments to a parser."""
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=Path("config.toml"),
        help="Path to configuration file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log protocol traffic",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip TLS certificate validation",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(description="Mailwire IMAP folder tool")
    add_common_args(parser)
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    status_parser = subparsers.add_parser("status", help="Show connection details")
    add_common_args(status_parser)

    folders_parser = subparsers.add_parser("folders", help="List folders")
    add_common_args(folders_parser)
    folders_parser.add_argument("--parent", help="Only list folders under this prefix")

    find_parser = subparsers.add_parser("find", help="Find a folder by name or path")
    add_common_args(find_parser)
    find_parser.add_argument("folder", help="Folder name or path")
    find_parser.add_argument("--delimiter", help="Hierarchy delimiter (default from config)")

    create_parser = subparsers.add_parser("create-folder", help="Create a folder")
    add_common_args(create_parser)
    create_parser.add_argument("folder", help="Folder path to create")
    create_parser.add_argument(
        "--no-expunge",
        action="store_true",
        help="Do not expunge after creating",
    )

    expunge_parser = subparsers.add_parser("expunge", help="Expunge deleted messages from a folder")
    add_common_args(expunge_parser)
    expunge_parser.add_argument("folder", help="Folder to expunge")

    return parser


def status_cmd(mailbox: Mailbox) -> None:
    connection = mailbox.connection()
    meta = connection.meta()
    print(f"{'Connected':<16} {connection.connected()}")
    print(f"{'Stream':<16} {meta.stream_type}")
    print(f"{'Protocol':<16} {meta.crypto.protocol or '-'}")
    print(f"{'Cipher':<16} {meta.crypto.cipher_name or '-'} ({meta.crypto.cipher_bits} bits)")


def list_folders_cmd(mailbox: Mailbox, parent: str | None = None) -> None:
    folders = mailbox.folders().get(parent)

    print(f"{'Folder':<40} {'Flags':<40}")
    print("-" * 80)
    for folder in sorted(folders, key=lambda f: f.path):
        print(f"{folder.path:<40} {' '.join(sorted(folder.flags)):<40}")


def find_folder_cmd(mailbox: Mailbox, name_or_path: str, delimiter: str | None = None) -> bool:
    folder = mailbox.folders().find(name_or_path, delimiter)
    if folder is None:
        logger.error(f"Folder not found: {name_or_path}")
        return False
    print(f"{folder.path} (name: {folder.name}, delimiter: {folder.delimiter!r})")
    return True


def create_folder_cmd(mailbox: Mailbox, path: str, expunge: bool = True) -> None:
    folder = mailbox.folders().create(path, expunge=expunge)
    print(f"Created {folder.path}")


def expunge_cmd(mailbox: Mailbox, path: str) -> None:
    connection = mailbox.connection()
    connection.select_folder(path).validated_data()
    expunged = mailbox.folders().expunge()
    print(f"Expunged {len(expunged)} messages from {path}")


def run_command(config: Config, args: argparse.Namespace) -> int:
    """Run a parsed subcommand against the configured server."""
    if getattr(args, "insecure", False):
        config.imap.validate_cert = False

    ok = True
    with Mailbox(config.imap) as mailbox:
        if args.command == "status":
            status_cmd(mailbox)
        elif args.command == "folders":
            list_folders_cmd(mailbox, getattr(args, "parent", None))
        elif args.command == "find":
            ok = find_folder_cmd(mailbox, args.folder, getattr(args, "delimiter", None))
        elif args.command == "create-folder":
            create_folder_cmd(mailbox, args.folder, expunge=not args.no_expunge)
        elif args.command == "expunge":
            expunge_cmd(mailbox, args.folder)
    return 0 if ok else 1


def main() -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()

    # Show help if no command specified
    if not args.command:
        parser.print_help()
        sys.exit(0)

    if args.verbose:
        logging.getLogger("mailwire").setLevel(logging.DEBUG)

    if not args.config.exists():
        logger.error(f"Configuration file not found: {args.config}")
        sys.exit(1)

    config = load_config(args.config)

    try:
        sys.exit(run_command(config, args))
    except MailwireError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
