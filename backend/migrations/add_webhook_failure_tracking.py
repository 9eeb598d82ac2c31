"""
Migration: Add failure tracking to webhooks.

Hooks now count consecutive failed deliveries and are switched off after
too many; disabled_at records when that happened.
"""
from sqlalchemy import create_engine, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/stormdesk"
)


def column_exists(conn, table_name: str, column_name: str) -> bool:
    result = conn.execute(text("""
        SELECT column_name
        FROM information_schema.columns
        WHERE table_name = :table_name AND column_name = :column_name
    """), {"table_name": table_name, "column_name": column_name})
    return result.fetchone() is not None


def run_migration():
    """Add failure_count and disabled_at to webhooks."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        if column_exists(conn, "webhooks", "failure_count"):
            print("failure_count column already exists")
        else:
            conn.execute(text("""
                ALTER TABLE webhooks
                ADD COLUMN failure_count INTEGER DEFAULT 0
            """))
            print("Added failure_count column to webhooks table")

        if column_exists(conn, "webhooks", "disabled_at"):
            print("disabled_at column already exists")
        else:
            conn.execute(text("""
                ALTER TABLE webhooks
                ADD COLUMN disabled_at TIMESTAMP
            """))
            print("Added disabled_at column to webhooks table")

        conn.commit()


if __name__ == "__main__":
    run_migration()
