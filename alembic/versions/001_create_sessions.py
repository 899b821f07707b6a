"""001: create sessions table

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_update_timestamp()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE sessions (
            id                  VARCHAR(64)     PRIMARY KEY,
            user_address        VARCHAR(42)     NOT NULL,
            relay_session_id    VARCHAR(128),
            initial_deposit     BIGINT          NOT NULL,
            current_balance     BIGINT          NOT NULL,
            total_bet_amount    NUMERIC(78, 0)  NOT NULL DEFAULT 0,
            total_won           NUMERIC(78, 0)  NOT NULL DEFAULT 0,
            total_lost          NUMERIC(78, 0)  NOT NULL DEFAULT 0,
            status              VARCHAR(10)     NOT NULL DEFAULT 'open',
            version             BIGINT          NOT NULL DEFAULT 0,
            opened_at           TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            closed_at           TIMESTAMPTZ,
            settlement_tx_hash  VARCHAR(66),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_sessions_balance_gte_0 CHECK (current_balance >= 0),
            CONSTRAINT ck_sessions_deposit_gt_0  CHECK (initial_deposit > 0),
            CONSTRAINT ck_sessions_status        CHECK (status IN ('open', 'closing', 'closed'))
        );
    """)
    op.execute("""
        CREATE UNIQUE INDEX uq_sessions_active_user
        ON sessions (user_address)
        WHERE status IN ('open', 'closing');
    """)
    op.execute("""
        CREATE TRIGGER trg_sessions_updated_at
            BEFORE UPDATE ON sessions
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE sessions IS 'Off-chain betting balance backed by an on-chain deposit';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS sessions CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")
