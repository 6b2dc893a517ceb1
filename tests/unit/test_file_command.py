import dataclasses
import os
import stat
from types import SimpleNamespace

import pytest
from loguru import logger

from domains.file_sync.commands.file_command import (
    ACTION_LABELS,
    FileAction,
    FileCommand,
    classify_event,
    describe_change,
)
from domains.file_sync.watchers.filesystem import WatchEvent, WatchEventKind


def fake_stat(mode):
    return lambda path: SimpleNamespace(st_mode=mode)


def missing_stat(path):
    raise FileNotFoundError(2, "No such file or directory", path)


@pytest.mark.parametrize(
    "kind, mode, expected",
    [
        (WatchEventKind.CREATED, stat.S_IFDIR | 0o755, FileAction.CREATE_DIR),
        (WatchEventKind.CREATED, stat.S_IFREG | 0o644, FileAction.CREATE_FILE),
        (WatchEventKind.MODIFIED, stat.S_IFREG | 0o644, FileAction.WRITE),
        (WatchEventKind.REMOVED, stat.S_IFREG | 0o644, FileAction.REMOVE),
        (WatchEventKind.RENAMED, stat.S_IFREG | 0o644, FileAction.RENAME),
        (WatchEventKind.PERMISSION_CHANGED, stat.S_IFREG | 0o600, FileAction.CHMOD),
    ],
)
def test_classify_event_maps_every_kind(kind, mode, expected):
    command = classify_event(WatchEvent(path="/sync/x", kind=kind), stat_path=fake_stat(mode))

    assert command is not None
    assert command.action is expected
    assert command.path == "/sync/x"


def test_classify_created_event_uses_real_stat(tmp_path):
    directory = tmp_path / "models"
    directory.mkdir()
    file_path = tmp_path / "notes.txt"
    file_path.write_text("hello")

    dir_command = classify_event(WatchEvent(path=str(directory), kind=WatchEventKind.CREATED))
    file_command = classify_event(WatchEvent(path=str(file_path), kind=WatchEventKind.CREATED))

    assert dir_command.action is FileAction.CREATE_DIR
    assert file_command.action is FileAction.CREATE_FILE


def test_created_event_for_vanished_path_is_dropped(log_records):
    event = WatchEvent(path="/sync/gone.txt", kind=WatchEventKind.CREATED)

    assert classify_event(event, stat_path=missing_stat) is None
    assert any("Dropping created event" in r["message"] for r in log_records)


def test_only_created_events_need_stat():
    for kind in (WatchEventKind.REMOVED, WatchEventKind.RENAMED, WatchEventKind.MODIFIED):
        command = classify_event(WatchEvent(path="/sync/gone.txt", kind=kind), stat_path=missing_stat)
        assert command is not None


def test_every_action_has_a_label():
    assert set(ACTION_LABELS) == set(FileAction)


def test_rename_description_includes_destination():
    event = WatchEvent(path="/sync/a.txt", kind=WatchEventKind.RENAMED, dest_path="/sync/b.txt")
    command = classify_event(event)

    assert command.dest_path == "/sync/b.txt"
    assert command.describe() == "Rename file: /sync/a.txt -> /sync/b.txt"
    assert str(command) == command.describe()


def test_description_is_fixed_at_construction():
    command = FileCommand(
        action=FileAction.WRITE,
        path="/sync/a.txt",
        description=describe_change(FileAction.WRITE, "/sync/a.txt"),
    )
    before = command.describe()

    command.execute()
    command.undo()

    assert command.describe() == before == "Modify file: /sync/a.txt"
    with pytest.raises(dataclasses.FrozenInstanceError):
        command.path = "/sync/other.txt"


def test_execute_and_undo_log_structured_fields(log_records):
    command = classify_event(
        WatchEvent(path="/sync/a.txt", kind=WatchEventKind.REMOVED)
    )

    command.execute()
    command.undo()

    executed = [r for r in log_records if r["message"].startswith("Executing file command")]
    undone = [r for r in log_records if r["message"].startswith("Undoing file command")]
    assert executed and undone
    assert executed[0]["extra"]["action"] == "remove"
    assert executed[0]["extra"]["path"] == "/sync/a.txt"
    assert undone[0]["extra"]["command_id"] == command.id


def test_injected_logger_is_used_and_kept_out_of_equality(log_records):
    event = WatchEvent(path="/sync/a.txt", kind=WatchEventKind.MODIFIED)
    command = classify_event(event, log=logger.bind(run="injected"))

    command.execute()

    executed = [r for r in log_records if r["message"].startswith("Executing file command")]
    assert executed[0]["extra"]["run"] == "injected"
    assert "log=" not in repr(command)
    assert dataclasses.replace(command, log=logger) == command


def test_commands_get_unique_ids():
    event = WatchEvent(path="/sync/a.txt", kind=WatchEventKind.MODIFIED)

    assert classify_event(event).id != classify_event(event).id


@pytest.mark.skipif(os.name == "nt", reason="POSIX file modes")
def test_classify_created_symlink_to_directory_is_directory(tmp_path):
    target = tmp_path / "target"
    target.mkdir()
    link = tmp_path / "link"
    link.symlink_to(target)

    command = classify_event(WatchEvent(path=str(link), kind=WatchEventKind.CREATED))

    assert command.action is FileAction.CREATE_DIR
