"""002: create session_bets table

Revision ID: 002
Revises: 001
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE session_bets (
            id                    BIGSERIAL       PRIMARY KEY,
            session_id            VARCHAR(64)     NOT NULL REFERENCES sessions (id),
            market_id             VARCHAR(64)     NOT NULL,
            user_address          VARCHAR(42)     NOT NULL,
            side                  BOOLEAN         NOT NULL,
            amount                BIGINT          NOT NULL,
            settled               BOOLEAN         NOT NULL DEFAULT FALSE,
            won                   BOOLEAN,
            pnl                   BIGINT,
            leaderboard_credited  BOOLEAN         NOT NULL DEFAULT FALSE,
            created_at            TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            settled_at            TIMESTAMPTZ,
            CONSTRAINT ck_session_bets_amount_gt_0 CHECK (amount > 0)
        );
    """)
    op.execute("""
        CREATE INDEX ix_session_bets_market_unsettled
        ON session_bets (market_id)
        WHERE settled = false;
    """)
    op.execute(
        "CREATE INDEX ix_session_bets_session_time ON session_bets (session_id, created_at);"
    )
    op.execute("COMMENT ON TABLE session_bets IS 'Stakes debited from a session; settled once per market';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS session_bets CASCADE;")
