"""
Path utilities for kendotree.
"""

import os
from pathlib import Path

DATA_DIR_ENV = "KENDOTREE_DATA_DIR"


def get_data_dir() -> Path:
    """
    Get the user data directory for storing the database and exports.

    Returns:
        - $KENDOTREE_DATA_DIR when set
        - Otherwise .kendotree/ in the current working directory
    """
    env_dir = os.environ.get(DATA_DIR_ENV)
    data_dir = Path(env_dir) if env_dir else Path.cwd() / ".kendotree"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
