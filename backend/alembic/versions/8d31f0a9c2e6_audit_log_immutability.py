"""audit_log_immutability

Revision ID: 8d31f0a9c2e6
Revises: 5b2e8c41d7a0
Create Date: 2026-03-09 11:42:07.000000

Audit rows for submissions and approval decisions are append-only:
- Revoke UPDATE and DELETE from PUBLIC
- Grant SELECT and INSERT only
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '8d31f0a9c2e6'
down_revision: Union[str, None] = '5b2e8c41d7a0'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("REVOKE UPDATE, DELETE ON audit_logs FROM PUBLIC;")
    op.execute("GRANT SELECT, INSERT ON audit_logs TO PUBLIC;")


def downgrade() -> None:
    op.execute("GRANT UPDATE, DELETE ON audit_logs TO PUBLIC;")
