"""
Helper utilities for the fsync client.

Common functions used across domains.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
from uuid import uuid4


def generate_uuid() -> str:
    """Generate a unique identifier."""
    return str(uuid4())


def now_iso() -> str:
    """Get current timestamp as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def should_exclude_path(path: Path, exclude_patterns: Optional[List[str]] = None) -> bool:
    """
    Check if path should be excluded based on patterns.

    A pattern matches when it glob-matches the path or when it equals one of
    the path's components.

    Args:
        path: Path to check
        exclude_patterns: List of glob patterns to exclude

    Returns:
        True if should exclude, False otherwise
    """
    if exclude_patterns is None:
        exclude_patterns = [
            '*.pyc',
            '__pycache__',
            '.git',
            '*.swp',
            '*.tmp',
        ]

    for pattern in exclude_patterns:
        if path.match(pattern) or pattern in path.parts:
            return True

    return False
