"""
Migration: Add stripe_events table.

Every verified Stripe event id is recorded before it is handled so that
redeliveries are acknowledged without being applied twice.
"""
from sqlalchemy import create_engine, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/stormdesk"
)


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = :table_name
        )
    """), {"table_name": table_name})
    return result.fetchone()[0]


def run_migration():
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        if table_exists(conn, "stripe_events"):
            print("stripe_events table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE stripe_events (
                    id VARCHAR(255) PRIMARY KEY,
                    event_type VARCHAR(100) NOT NULL,
                    received_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            print("Created stripe_events table")

        conn.commit()


if __name__ == "__main__":
    run_migration()
