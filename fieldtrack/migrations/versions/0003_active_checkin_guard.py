"""Allow at most one active check-in per employee

Revision ID: 0003_active_checkin_guard
Revises: 0002_checkin_distance
Create Date: 2026-10-18 00:20:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0003_active_checkin_guard"
down_revision: Union[str, None] = "0002_checkin_distance"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Close all but the newest open session per employee before the index can be built.
    op.execute(
        """
        UPDATE checkins
        SET status = 'checked_out',
            checkout_time = COALESCE(checkout_time, checkin_time)
        WHERE status = 'checked_in'
          AND id NOT IN (
              SELECT max_id FROM (
                  SELECT MAX(id) AS max_id
                  FROM checkins
                  WHERE status = 'checked_in'
                  GROUP BY employee_id
              ) AS newest
          )
        """
    )
    op.create_index(
        "uq_checkins_one_active_per_employee",
        "checkins",
        ["employee_id"],
        unique=True,
        postgresql_where=sa.text("status = 'checked_in'"),
        sqlite_where=sa.text("status = 'checked_in'"),
    )


def downgrade() -> None:
    op.drop_index("uq_checkins_one_active_per_employee", table_name="checkins")
