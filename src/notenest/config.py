"""Configuration constants for notenest."""

import os
from pathlib import Path

# Key under which the whole card tree is persisted in the byte store.
STORAGE_KEY: str = "notecards_data"

# Version tag written into export files.
EXPORT_VERSION: int = 2

# Bullet items may be indented 0..MAX_BULLET_INDENT levels.
MAX_BULLET_INDENT: int = 5

# Image display width, in percent.
MIN_IMAGE_WIDTH: int = 10
MAX_IMAGE_WIDTH: int = 100

# Directory with data. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/notenest").expanduser(),
    Path("~/.notenest").expanduser(),
    Path("~/.config/notenest").expanduser(),
]

DATA_DIR_ENV: str = "NOTENEST_DATA_DIR"

DATABASE_FILENAME: str = "notes.db"


def resolve_data_directory() -> Path:
    """Return the data directory to use.

    ``NOTENEST_DATA_DIR`` wins when set. Otherwise the first existing entry of
    DATA_DIRECTORIES is used, falling back to the first candidate.
    """
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DATA_DIRECTORIES[0]
