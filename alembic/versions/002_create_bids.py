"""002: create bids table

Revision ID: 002
Revises: 001
Create Date: 2026-10-05
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE bids (
            id              VARCHAR(32)     PRIMARY KEY,
            listing_id      VARCHAR(32)     NOT NULL REFERENCES listings (id),
            bidder_id       VARCHAR(64)     NOT NULL,
            amount_cents    BIGINT          NOT NULL,
            currency        CHAR(3)         NOT NULL DEFAULT 'USD',
            sequence        INT             NOT NULL,
            status          VARCHAR(20)     NOT NULL DEFAULT 'active',
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_bids_listing_sequence UNIQUE (listing_id, sequence),
            CONSTRAINT ck_bids_amount_positive  CHECK (amount_cents > 0),
            CONSTRAINT ck_bids_sequence_gte_1   CHECK (sequence >= 1),
            CONSTRAINT ck_bids_status CHECK (
                status IN ('active', 'outbid', 'won', 'lost', 'cancelled')
            )
        );
    """)
    # At most one winner per listing.
    op.execute("""
        CREATE UNIQUE INDEX uq_bids_one_won_per_listing
        ON bids (listing_id)
        WHERE status = 'won';
    """)
    op.execute("CREATE INDEX idx_bids_bidder ON bids (bidder_id, created_at DESC);")
    op.execute("""
        CREATE TRIGGER trg_bids_updated_at
            BEFORE UPDATE ON bids
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)
    op.execute("COMMENT ON TABLE bids IS 'Auction bids, never deleted; winner derived by (amount, sequence)';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS bids CASCADE;")
