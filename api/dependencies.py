from __future__ import annotations

from pathlib import Path

import store


def get_db_path() -> Path:
    return store.DB_PATH
