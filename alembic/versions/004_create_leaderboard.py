"""004: create leaderboard table

Revision ID: 004
Revises: 003
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE leaderboard (
            address      VARCHAR(42)     PRIMARY KEY,
            pnl_wei      NUMERIC(78, 0)  NOT NULL DEFAULT 0,
            bets         INT             NOT NULL DEFAULT 0,
            wins         INT             NOT NULL DEFAULT 0,
            losses       INT             NOT NULL DEFAULT 0,
            volume_wei   NUMERIC(78, 0)  NOT NULL DEFAULT 0,
            updated_at   TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_leaderboard_counts CHECK (wins + losses = bets),
            CONSTRAINT ck_leaderboard_volume_gte_0 CHECK (volume_wei >= 0)
        );
    """)
    op.execute("CREATE INDEX ix_leaderboard_pnl ON leaderboard (pnl_wei DESC);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS leaderboard CASCADE;")
