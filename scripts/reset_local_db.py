"""Utility script to rebuild the local chapter database.

Usage:
    python scripts/reset_local_db.py

Environment:
    Ensure DATABASE_URL (and other required settings) are available in
    the current shell before running this script. Stored LINE credentials
    are dropped with everything else; re-run ``save_line_credentials.py``
    for each tenant afterwards.
"""

from __future__ import annotations

from typing import List

from chapter_bot import models  # noqa: F401
from chapter_bot.db import Base, get_engine


def reset_database() -> List[str]:
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    return sorted(Base.metadata.tables)


if __name__ == "__main__":
    tables = reset_database()
    print(f"Local chapter database reset ({len(tables)} tables): {', '.join(tables)}")
