"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 12:00:00.000000

Initial BallUp schema: users, locations, games, game_participants, admin_logs,
with the (game_id, user_id) unique constraint on participants.
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from the current models."""
    from ballup.database.db import Base
    from ballup.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind, checkfirst=True)


def downgrade() -> None:
    """Drop all tables."""
    from ballup.database.db import Base
    from ballup.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind, checkfirst=True)
