"""001 – Initial schema: employees, leave types, leave requests, holidays, audit trail.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 09:30:00.000000+07:00
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

APPROVAL_VALUES = "('Pending', 'Approved', 'Rejected')"

LEAVE_TYPES: list[tuple[str, str]] = [
    ("Cuti Tahunan", "Annual leave, deducted from the yearly balance"),
    ("Cuti Sakit", "Sick leave"),
    ("Cuti Besar", "Long service leave"),
    ("Cuti Melahirkan", "Maternity leave"),
    ("Cuti Karena Alasan Penting", "Leave for important personal reasons"),
    ("Cuti Di Luar Tanggungan Negara", "Unpaid leave"),
]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id               SERIAL PRIMARY KEY,
            nip              VARCHAR(30) UNIQUE,
            name             VARCHAR(200) NOT NULL,
            email            VARCHAR(255) NOT NULL UNIQUE,
            position         VARCHAR(200),
            workunit         VARCHAR(200),
            address          TEXT,
            phone            VARCHAR(30),
            role             VARCHAR(20) NOT NULL DEFAULT 'user'
                             CHECK (role IN ('user', 'admin')),
            is_active        BOOLEAN DEFAULT TRUE,
            leave_balance    JSONB NOT NULL DEFAULT '{}'::jsonb,
            balance_version  INTEGER NOT NULL DEFAULT 0,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_employees_role ON employees(role)")

    # ── 2. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id           SERIAL PRIMARY KEY,
            name         VARCHAR(100) NOT NULL UNIQUE,
            description  TEXT,
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 3. leave_requests ─────────────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE leave_requests (
            id                                 VARCHAR(64) PRIMARY KEY,
            user_id                            INTEGER NOT NULL REFERENCES employees(id),
            type                               VARCHAR(100) NOT NULL,
            start_date                         DATE NOT NULL,
            end_date                           DATE NOT NULL,
            workingdays                        INTEGER NOT NULL,
            reason                             TEXT,
            address                            TEXT,
            phone                              VARCHAR(30),
            leave_year                         INTEGER NOT NULL,
            status                             VARCHAR(20) NOT NULL DEFAULT 'Pending'
                                               CHECK (status IN {APPROVAL_VALUES}),
            supervisor_id                      INTEGER NOT NULL REFERENCES employees(id),
            supervisor_status                  VARCHAR(20) NOT NULL DEFAULT 'Pending'
                                               CHECK (supervisor_status IN {APPROVAL_VALUES}),
            supervisor_viewed                  BOOLEAN DEFAULT FALSE,
            supervisor_signed                  BOOLEAN DEFAULT FALSE,
            supervisor_signature_date          TIMESTAMPTZ,
            authorized_officer_id              INTEGER NOT NULL REFERENCES employees(id),
            authorized_officer_status          VARCHAR(20) NOT NULL DEFAULT 'Pending'
                                               CHECK (authorized_officer_status IN {APPROVAL_VALUES}),
            authorized_officer_viewed          BOOLEAN DEFAULT FALSE,
            authorized_officer_signed          BOOLEAN DEFAULT FALSE,
            authorized_officer_signature_date  TIMESTAMPTZ,
            rejection_reason                   TEXT,
            saldo_n2_year                      INTEGER DEFAULT 0,
            saldo_carry                        INTEGER DEFAULT 0,
            saldo_current_year                 INTEGER DEFAULT 0,
            used_n2_year                       INTEGER DEFAULT 0,
            used_carry_over_days               INTEGER DEFAULT 0,
            used_current_year_days             INTEGER DEFAULT 0,
            link_file                          VARCHAR(1000),
            created_at                         TIMESTAMPTZ DEFAULT NOW(),
            updated_at                         TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_date_range CHECK (end_date >= start_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_user_year ON leave_requests(user_id, leave_year)"
    )
    op.execute("CREATE INDEX idx_leave_requests_supervisor ON leave_requests(supervisor_id)")
    op.execute(
        "CREATE INDEX idx_leave_requests_officer ON leave_requests(authorized_officer_id)"
    )

    # ── 4. holidays ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE holidays (
            id           SERIAL PRIMARY KEY,
            name         VARCHAR(200) NOT NULL,
            date         DATE NOT NULL UNIQUE,
            description  TEXT,
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 5. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           SERIAL PRIMARY KEY,
            actor_id     INTEGER REFERENCES employees(id),
            action       VARCHAR(50)  NOT NULL,
            entity_type  VARCHAR(50)  NOT NULL,
            entity_id    VARCHAR(64)  NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX idx_audit_entity ON audit_trail(entity_type, entity_id)"
    )
    op.execute("CREATE INDEX idx_audit_created ON audit_trail(created_at)")

    # ── Seed data ─────────────────────────────────────────────────────────
    leave_types = sa.table(
        "leave_types",
        sa.column("name", sa.String),
        sa.column("description", sa.Text),
    )
    op.bulk_insert(
        leave_types,
        [{"name": name, "description": desc} for name, desc in LEAVE_TYPES],
    )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "holidays",
        "leave_requests",
        "leave_types",
        "employees",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")
