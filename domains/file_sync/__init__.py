"""
File Sync Domain

Watches the sync directory and turns every change into an undoable command:
- watchers/filesystem.py - Recursive watcher, one watch per directory
- commands/ - Command types, bounded worker queue and undo history
- service.py - Wires watcher, classifier and command manager together

Transfer of file contents to a remote peer is not implemented yet; commands
record and report the changes they react to.
"""

__all__ = ["commands", "watchers"]
