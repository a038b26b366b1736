"""007: create domain_events outbox

Revision ID: 007
Revises: 006
Create Date: 2026-10-06
"""
from typing import Sequence, Union
from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE domain_events (
            id              VARCHAR(32)     PRIMARY KEY,
            event_type      VARCHAR(40)     NOT NULL,
            aggregate_id    VARCHAR(32)     NOT NULL,
            payload         JSONB           NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            published_at    TIMESTAMPTZ,
            CONSTRAINT ck_domain_events_type CHECK (
                event_type IN (
                    'BID_PLACED',
                    'BID_OUTBID',
                    'BID_RETRACTED',
                    'AUCTION_CLOSING_SOON',
                    'AUCTION_CLOSED',
                    'LISTING_SOLD_OUT',
                    'ORDER_CREATED',
                    'ORDER_STATUS_CHANGED'
                )
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_domain_events_unpublished
        ON domain_events (id)
        WHERE published_at IS NULL;
    """)
    op.execute("CREATE INDEX idx_domain_events_aggregate ON domain_events (aggregate_id, created_at);")
    op.execute("COMMENT ON TABLE domain_events IS 'Transactional outbox, relayed to Redis pub/sub';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS domain_events CASCADE;")
