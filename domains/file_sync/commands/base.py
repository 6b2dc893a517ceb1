"""Command abstraction shared by every kind of reactive work."""

from abc import ABC, abstractmethod


class CommandError(Exception):
    """Raised when a command fails to execute or undo."""

    def __init__(self, message: str, description: str = ""):
        super().__init__(message)
        self.description = description


class Command(ABC):
    """
    A unit of work created from one file system event.

    ``execute`` reacts to a change that already happened, ``undo`` performs
    a best-effort compensation and ``describe`` returns a stable label used in
    logs and the undo history.
    """

    @abstractmethod
    def execute(self) -> None:
        """Carry out the command."""

    @abstractmethod
    def undo(self) -> None:
        """Compensate for the command, as far as the command supports it."""

    @abstractmethod
    def describe(self) -> str:
        """Return a human readable description fixed at construction time."""

    def __str__(self) -> str:
        return self.describe()
