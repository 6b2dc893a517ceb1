"""
File Sync Commands

- base.py - Command interface and CommandError
- file_command.py - FileCommand and the event classifier
- queue.py - Bounded queue drained by a worker pool
- manager.py - Undo history in front of the queue
"""

from domains.file_sync.commands.base import Command, CommandError
from domains.file_sync.commands.file_command import FileAction, FileCommand, classify_event
from domains.file_sync.commands.manager import CommandManager
from domains.file_sync.commands.queue import CommandQueue, QueueStats

__all__ = [
    "Command",
    "CommandError",
    "CommandManager",
    "CommandQueue",
    "FileAction",
    "FileCommand",
    "QueueStats",
    "classify_event",
]
