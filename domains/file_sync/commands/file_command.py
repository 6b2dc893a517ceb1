"""
File commands for the File Sync domain.

One ``FileCommand`` is built per ``WatchEvent``. By the time it runs the
change has already happened on disk, so executing it records the change;
undo is a logged placeholder until compensation (trash/restore) exists.
"""

import os
import stat
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from loguru import logger

from app.utils.helpers import generate_uuid, now_iso
from domains.file_sync.commands.base import Command
from domains.file_sync.watchers.filesystem import WatchEvent, WatchEventKind

if TYPE_CHECKING:
    from loguru import Logger


class FileAction(str, Enum):
    """Actions a file command reacts to."""

    CREATE_DIR = "create_dir"
    CREATE_FILE = "create_file"
    WRITE = "write"
    REMOVE = "remove"
    RENAME = "rename"
    CHMOD = "chmod"


ACTION_LABELS = {
    FileAction.CREATE_DIR: "Create directory",
    FileAction.CREATE_FILE: "Create file",
    FileAction.WRITE: "Modify file",
    FileAction.REMOVE: "Remove file",
    FileAction.RENAME: "Rename file",
    FileAction.CHMOD: "Change file permissions",
}

ACTION_FOR_KIND = {
    WatchEventKind.MODIFIED: FileAction.WRITE,
    WatchEventKind.REMOVED: FileAction.REMOVE,
    WatchEventKind.RENAMED: FileAction.RENAME,
    WatchEventKind.PERMISSION_CHANGED: FileAction.CHMOD,
}


@dataclass(frozen=True)
class FileCommand(Command):
    """Reaction to a single change of a file or directory."""

    action: FileAction
    path: str
    description: str
    dest_path: Optional[str] = None
    id: str = field(default_factory=generate_uuid)
    created_at: str = field(default_factory=now_iso)
    log: "Logger" = field(default=logger, repr=False, compare=False)

    def execute(self) -> None:
        """Record the change this command was created for."""
        self.log.bind(
            action=self.action.value,
            path=self.path,
            dest_path=self.dest_path,
            command_id=self.id,
        ).info(f"Executing file command: {self.description}")

    def undo(self) -> None:
        """Record that an undo was requested; no compensation is performed."""
        self.log.bind(action=self.action.value, path=self.path, command_id=self.id).info(
            f"Undoing file command: {self.description}"
        )

    def describe(self) -> str:
        return self.description


def describe_change(action: FileAction, path: str, dest_path: Optional[str] = None) -> str:
    """Build the stable description for a file command."""
    if action is FileAction.RENAME and dest_path:
        return f"{ACTION_LABELS[action]}: {path} -> {dest_path}"
    return f"{ACTION_LABELS[action]}: {path}"


def classify_event(
    event: WatchEvent,
    stat_path: Callable[[str], os.stat_result] = os.stat,
    log=logger,
) -> Optional[FileCommand]:
    """
    Turn a watch event into the matching file command.

    Created events are split into directory and file creation by statting the
    path. If that stat fails the path is already gone and no command is built.

    Args:
        event: Event reported by the watcher
        stat_path: Function used to stat created paths
        log: Logger handed to the command

    Returns:
        The command, or None if the event was dropped
    """
    if event.kind is WatchEventKind.CREATED:
        try:
            mode = stat_path(event.path).st_mode
        except OSError as e:
            log.bind(path=event.path, error=str(e)).debug(
                f"Dropping created event, path cannot be stat'd: {event.path}"
            )
            return None
        action = FileAction.CREATE_DIR if stat.S_ISDIR(mode) else FileAction.CREATE_FILE
    else:
        action = ACTION_FOR_KIND[event.kind]

    return FileCommand(
        action=action,
        path=event.path,
        dest_path=event.dest_path,
        description=describe_change(action, event.path, event.dest_path),
        log=log,
    )
