"""
Add a PostgreSQL exclusion constraint that forbids overlapping appointments

- Enables btree_gist so provider_id (equality) and the time range (overlap)
  can share one GiST index
- appointments: no two rows for the same provider whose status still blocks
  time may have intersecting half-open [start_time, end_time) ranges

The application already serialises bookings per provider with SELECT ... FOR
UPDATE; this constraint backs that up at the database level. Violations surface
as IntegrityError and are reported to clients as booking conflicts.

PostgreSQL only. SQLite deployments rely on BEGIN IMMEDIATE instead.
"""

# Ensure this script can be run directly from the repo root
import sys
from pathlib import Path

CURRENT_DIR = Path(__file__).resolve().parent
PROJECT_DIR = CURRENT_DIR.parent
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

from sqlalchemy import text  # noqa: E402

from booking_engine.database import engine  # noqa: E402
from booking_engine.models import NON_BLOCKING_STATUSES  # noqa: E402

CONSTRAINT_NAME = "ex_appointments_provider_no_overlap"


def upgrade():
    if engine.dialect.name != "postgresql":
        print(f"Skipping {CONSTRAINT_NAME}: requires PostgreSQL (dialect is {engine.dialect.name})")
        return

    released = ", ".join(f"'{status}'" for status in NON_BLOCKING_STATUSES)
    with engine.connect() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS btree_gist"))
        conn.execute(text(f"ALTER TABLE appointments DROP CONSTRAINT IF EXISTS {CONSTRAINT_NAME}"))
        conn.execute(
            text(
                f"""
                ALTER TABLE appointments
                ADD CONSTRAINT {CONSTRAINT_NAME}
                EXCLUDE USING gist (
                    provider_id WITH =,
                    tsrange(start_time, end_time, '[)') WITH &&
                )
                WHERE (status NOT IN ({released}));
                """
            )
        )
        conn.commit()
        print(f"Migration {CONSTRAINT_NAME} applied successfully")


def downgrade():
    if engine.dialect.name != "postgresql":
        return

    with engine.connect() as conn:
        conn.execute(text(f"ALTER TABLE appointments DROP CONSTRAINT IF EXISTS {CONSTRAINT_NAME}"))
        conn.commit()
        print(f"Migration {CONSTRAINT_NAME} rolled back")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Manage the appointment overlap exclusion constraint")
    parser.add_argument("--down", action="store_true", help="Rollback the migration")
    args = parser.parse_args()

    if args.down:
        downgrade()
    else:
        upgrade()
