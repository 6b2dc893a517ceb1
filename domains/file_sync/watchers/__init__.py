"""
File Sync Watchers

- filesystem.py - Recursive watchdog-based watcher emitting WatchEvents
"""
