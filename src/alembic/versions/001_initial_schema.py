"""Initial schema -- subscriber and notice tables plus the append-only trigger.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17
"""

from alembic import op

from billrelay.schema_sql import tables, triggers

revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _execute_all(statements: list[str]) -> None:
    """Execute a list of SQL statements sequentially."""
    for stmt in statements:
        op.execute(stmt)


def upgrade() -> None:
    _execute_all(tables.ALL)
    _execute_all(triggers.FUNCTIONS_ALL)
    _execute_all(triggers.TRIGGERS_ALL)


def downgrade() -> None:
    op.execute(
        "DROP TRIGGER IF EXISTS trg_notice_transactions_immutable "
        "ON notice_transactions;"
    )
    op.execute("DROP FUNCTION IF EXISTS raise_immutable_error();")
    for table in ("notice_transactions", "line_users"):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")
