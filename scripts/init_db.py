import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import store


def init_db(db_path: Path | None = None) -> Path:
    path = db_path or store.DB_PATH
    store.ensure_db(path)
    return path


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    target = init_db(Path(sys.argv[1]) if len(sys.argv) > 1 else None)
    print(f"Initialized database at {target}")
