"""005: create chain_bet_credits table

Revision ID: 005
Revises: 004
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE chain_bet_credits (
            tx_hash       VARCHAR(66)     NOT NULL,
            log_index     INT             NOT NULL,
            market_id     VARCHAR(64)     NOT NULL,
            user_address  VARCHAR(42)     NOT NULL,
            side          BOOLEAN         NOT NULL,
            amount_wei    NUMERIC(78, 0)  NOT NULL,
            block_number  BIGINT          NOT NULL,
            credited_at   TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            PRIMARY KEY (tx_hash, log_index),
            CONSTRAINT ck_chain_bet_credits_amount_gte_0 CHECK (amount_wei >= 0)
        );
    """)
    op.execute("CREATE INDEX ix_chain_bet_credits_market ON chain_bet_credits (market_id);")
    op.execute(
        "COMMENT ON TABLE chain_bet_credits IS "
        "'Custody BetPlaced logs already counted on the leaderboard';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS chain_bet_credits CASCADE;")
