"""003: create market_settlements table

Revision ID: 003
Revises: 002
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE market_settlements (
            market_id            VARCHAR(64)     PRIMARY KEY,
            resolved_yes         BOOLEAN         NOT NULL,
            chain_tx_hash        VARCHAR(66),
            chain_settled_at     TIMESTAMPTZ,
            leaderboard_done_at  TIMESTAMPTZ,
            sessions_done_at     TIMESTAMPTZ,
            bets_settled         INT             NOT NULL DEFAULT 0,
            created_at           TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at           TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_market_settlements_bets_gte_0 CHECK (bets_settled >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_market_settlements_updated_at
            BEFORE UPDATE ON market_settlements
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE market_settlements IS 'Per-market settlement progress; a set *_at column marks a finished step';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS market_settlements CASCADE;")
