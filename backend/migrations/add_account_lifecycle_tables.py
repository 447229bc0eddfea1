"""
Migration: Add account lifecycle and credit tables.

Adds the lifecycle columns to users and creates:
1. archived_users - point-in-time account snapshots
2. reactivation_requests - admin-reviewed reactivation requests
3. credit_transactions - append-only credit ledger
4. applicant_views - per-field disclosure grants
5. pricing_settings - per-field disclosure cost

Partial unique indexes enforce at most one live archive and at most one
pending reactivation request per account.
"""
from sqlalchemy import create_engine, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/ezapply"
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


def column_exists(conn, table_name: str, column_name: str) -> bool:
    result = conn.execute(text("""
        SELECT column_name
        FROM information_schema.columns
        WHERE table_name = :table_name AND column_name = :column_name
    """), {"table_name": table_name, "column_name": column_name})
    return result.fetchone() is not None


USER_COLUMNS = [
    ("session_version", "INTEGER NOT NULL DEFAULT 0"),
    ("deactivation_requested_at", "TIMESTAMP"),
    ("deactivation_scheduled_at", "TIMESTAMP"),
    ("is_deactivated", "BOOLEAN NOT NULL DEFAULT FALSE"),
]


def run_migration():
    """Create all account lifecycle tables."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        # =================================================================
        # users: lifecycle columns
        # =================================================================
        for column, definition in USER_COLUMNS:
            if column_exists(conn, "users", column):
                print(f"users.{column} already exists")
            else:
                conn.execute(text(f"ALTER TABLE users ADD COLUMN {column} {definition}"))
                print(f"Added users.{column}")

        conn.execute(text("""
            CREATE INDEX IF NOT EXISTS idx_users_deactivation_due
            ON users(deactivation_scheduled_at) WHERE is_deactivated = FALSE
        """))

        # =================================================================
        # TABLE 1: archived_users
        # =================================================================
        if table_exists(conn, "archived_users"):
            print("archived_users table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE archived_users (
                    id VARCHAR(36) PRIMARY KEY,
                    original_user_id VARCHAR(36) NOT NULL,
                    email VARCHAR(255) NOT NULL,
                    snapshot_version INTEGER NOT NULL,
                    user_data JSON NOT NULL,
                    basic_info_data JSON,
                    address_data JSON,
                    financial_data JSON,
                    affiliations_data JSON,
                    attachments_data JSON,
                    applications_data JSON,
                    company_data JSON,
                    archived_at TIMESTAMP NOT NULL,
                    archived_by VARCHAR(36),
                    restored_at TIMESTAMP,
                    restored_by VARCHAR(36),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_archived_users_user_archived_at UNIQUE (original_user_id, archived_at)
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_archived_users_original_user_id ON archived_users(original_user_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_archived_users_archived_at ON archived_users(archived_at)
            """))
            conn.execute(text("""
                CREATE UNIQUE INDEX uq_archived_users_live
                ON archived_users(original_user_id) WHERE restored_at IS NULL
            """))
            print("Created archived_users table")

        # =================================================================
        # TABLE 2: reactivation_requests
        # =================================================================
        if table_exists(conn, "reactivation_requests"):
            print("reactivation_requests table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE reactivation_requests (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(36) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    email VARCHAR(255) NOT NULL,
                    reason TEXT,
                    status VARCHAR(20) NOT NULL DEFAULT 'pending',
                    reviewed_by VARCHAR(36),
                    reviewed_at TIMESTAMP,
                    admin_notes TEXT,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_reactivation_requests_user_id ON reactivation_requests(user_id)
            """))
            conn.execute(text("""
                CREATE UNIQUE INDEX uq_reactivation_requests_pending
                ON reactivation_requests(user_id) WHERE status = 'pending'
            """))
            print("Created reactivation_requests table")

        # =================================================================
        # TABLE 3: credit_transactions
        # =================================================================
        if table_exists(conn, "credit_transactions"):
            print("credit_transactions table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE credit_transactions (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(36) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    amount INTEGER NOT NULL,
                    type VARCHAR(20) NOT NULL,
                    description VARCHAR(255),
                    metadata JSON,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_credit_transactions_user_id ON credit_transactions(user_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_credit_transactions_created_at ON credit_transactions(created_at)
            """))
            print("Created credit_transactions table")

        # =================================================================
        # TABLE 4: applicant_views
        # =================================================================
        if table_exists(conn, "applicant_views"):
            print("applicant_views table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE applicant_views (
                    id VARCHAR(36) PRIMARY KEY,
                    company_id VARCHAR(36) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    user_id VARCHAR(36),
                    application_id VARCHAR(36) NOT NULL,
                    field_key VARCHAR(50) NOT NULL,
                    paid BOOLEAN NOT NULL DEFAULT TRUE,
                    cost INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_applicant_views_viewer_app_field UNIQUE (company_id, application_id, field_key)
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_applicant_views_application_id ON applicant_views(application_id)
            """))
            print("Created applicant_views table")

        # =================================================================
        # TABLE 5: pricing_settings
        # =================================================================
        if table_exists(conn, "pricing_settings"):
            print("pricing_settings table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE pricing_settings (
                    field_key VARCHAR(50) PRIMARY KEY,
                    cost INTEGER NOT NULL,
                    updated_by VARCHAR(36),
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            print("Created pricing_settings table")

        conn.commit()
        print("\nAccount lifecycle migration complete")


if __name__ == "__main__":
    run_migration()
