from __future__ import annotations

"""Create the class scheduling tables and their lookup indexes.

Safe to run multiple times (tables are created only when missing, indexes use
IF NOT EXISTS).

Run:
  python -m migrations.001_create_scheduling_tables --yes

Or:
  python backend/migrations/001_create_scheduling_tables.py --yes
"""

import argparse
import sys
from pathlib import Path

# Allow running this script from any working directory.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import text
from sqlalchemy.schema import CreateTable

import models  # noqa: F401
from core.database import ENGINE
from models.base import Base


INDEX_STATEMENTS = [
    # Cron: active series in creation order
    "CREATE INDEX IF NOT EXISTS idx_class_series_status_created ON class_series (status, created_at);",
    # Generation and confirmation neighbor lookups
    "CREATE INDEX IF NOT EXISTS idx_class_sessions_series_date ON class_sessions (series_id, date);",
    "CREATE INDEX IF NOT EXISTS idx_class_sessions_date_cancelled ON class_sessions (date, is_cancelled);",
    # Availability lookups
    "CREATE INDEX IF NOT EXISTS idx_user_availability_user_type_status ON user_availability (user_id, type, status);",
    "CREATE INDEX IF NOT EXISTS idx_vacations_branch_dates ON vacations (branch_id, start_date, end_date);",
    "CREATE INDEX IF NOT EXISTS idx_class_types_parent ON class_types (parent_id);",
    # Warnings UI
    "CREATE INDEX IF NOT EXISTS idx_scheduling_warnings_context ON scheduling_warnings (context, created_at);",
]


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--yes", action="store_true", help="Actually apply changes")
    args = parser.parse_args()

    tables = list(Base.metadata.sorted_tables)

    if not args.yes:
        print("Dry run. Re-run with --yes to apply.")
        for table in tables:
            print("---")
            print(str(CreateTable(table, if_not_exists=True).compile(ENGINE)).strip())
        for s in INDEX_STATEMENTS:
            print("---")
            print(s)
        return

    with ENGINE.begin() as conn:
        Base.metadata.create_all(conn, checkfirst=True)
        for s in INDEX_STATEMENTS:
            conn.execute(text(s))

    print(f"OK: created/verified {len(tables)} tables and {len(INDEX_STATEMENTS)} indexes.")


if __name__ == "__main__":
    main()
