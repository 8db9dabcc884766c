"""Add distance_from_client to checkins

Revision ID: 0002_checkin_distance
Revises: 0001_initial
Create Date: 2026-10-18 00:10:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002_checkin_distance"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # NULL means the client site had no coordinates at check-in time.
    op.add_column("checkins", sa.Column("distance_from_client", sa.Float(), nullable=True))


def downgrade() -> None:
    op.drop_column("checkins", "distance_from_client")
