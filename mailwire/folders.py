"""Folder lookup and management for a mailbox."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .exceptions import FolderNotFoundError

if TYPE_CHECKING:
    from .mailbox import Mailbox

logger = logging.getLogger("mailwire")


@dataclass(frozen=True)
class Folder:
    """A folder as reported by the server's LIST response."""
    mailbox: Mailbox = field(compare=False, repr=False)
    path: str
    flags: frozenset[str] = frozenset()
    delimiter: str = "/"

    @property
    def name(self) -> str:
        """Last segment of the folder path."""
        if not self.delimiter:
            return self.path
        return self.path.rsplit(self.delimiter, 1)[-1]

    @property
    def is_selectable(self) -> bool:
        return "\\Noselect" not in self.flags

    @property
    def has_children(self) -> bool:
        return "\\HasChildren" in self.flags


class FolderRepository:
    def __init__(self, mailbox: Mailbox):
        self.mailbox = mailbox

    def find(self, name_or_path: str, delimiter: str | None = None) -> Folder | None:
        """Find a folder by path when the input contains the delimiter, else by name."""
        delimiter = delimiter or self.mailbox.config("delimiter", "/")

        if delimiter in name_or_path:
            return self.find_by_path(name_or_path)

        return self.find_by_name(name_or_path)

    def find_by_name(self, name: str) -> Folder | None:
        return next((folder for folder in self.get() if folder.name == name), None)

    def find_by_path(self, path: str) -> Folder | None:
        return next((folder for folder in self.get() if folder.path == path), None)

    def get(self, parent: str | None = None) -> list[Folder]:
        """List folders, optionally only those under ``parent``.

        Always fetched from the server; nothing is cached.
        """
        items = self.mailbox.connection().folders("", f"{parent or ''}*").validated_data()

        return [
            Folder(
                mailbox=self.mailbox,
                path=folder_name,
                flags=frozenset(item["flags"]),
                delimiter=item["delimiter"],
            )
            for folder_name, item in items.items()
        ]

    def create(self, path: str, expunge: bool = True) -> Folder:
        """Create a folder and return it as listed by the server.

        Raises:
            CommandError: If the server rejects the CREATE or EXPUNGE
            FolderNotFoundError: If the new folder is missing from the listing
        """
        self.mailbox.connection().create_folder(path).validated_data()
        logger.info(f"Created folder {path}")

        if expunge:
            self.expunge()

        folder = self.find_by_path(path)
        if folder is None:
            raise FolderNotFoundError(f"Folder {path} not found after creation")
        return folder

    def expunge(self) -> list[int]:
        """Permanently remove messages flagged as deleted in the selected folder."""
        return self.mailbox.connection().expunge().validated_data()
