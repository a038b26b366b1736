"""001: create listings and listing_transitions

Revision ID: 001
Revises: 
Create Date: 2026-10-05
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_touch_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE listings (
            id                        VARCHAR(32)     PRIMARY KEY,
            seller_id                 VARCHAR(64)     NOT NULL,
            title                     VARCHAR(200)    NOT NULL,
            category_id               VARCHAR(64),
            currency                  CHAR(3)         NOT NULL DEFAULT 'USD',
            price_cents               BIGINT          NOT NULL,
            shipping_cents            BIGINT,
            is_auction                BOOLEAN         NOT NULL DEFAULT FALSE,
            auction_ends_at           TIMESTAMPTZ,
            status                    VARCHAR(20)     NOT NULL DEFAULT 'draft',
            total_quantity            INT             NOT NULL,
            sold_quantity             INT             NOT NULL DEFAULT 0,
            last_bid_sequence         INT             NOT NULL DEFAULT 0,
            version                   BIGINT          NOT NULL DEFAULT 0,
            closing_soon_notified_at  TIMESTAMPTZ,
            deleted_at                TIMESTAMPTZ,
            created_at                TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at                TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_listings_status CHECK (
                status IN ('draft', 'active', 'closed', 'sold', 'cancelled')
            ),
            CONSTRAINT ck_listings_price_positive    CHECK (price_cents > 0),
            CONSTRAINT ck_listings_shipping_gte_0    CHECK (shipping_cents IS NULL OR shipping_cents >= 0),
            CONSTRAINT ck_listings_quantity_gte_0    CHECK (total_quantity >= 0),
            CONSTRAINT ck_listings_sold_range        CHECK (sold_quantity >= 0 AND sold_quantity <= total_quantity),
            CONSTRAINT ck_listings_auction_shape     CHECK (
                NOT is_auction OR (total_quantity = 1 AND auction_ends_at IS NOT NULL)
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_listings_auction_due
        ON listings (auction_ends_at)
        WHERE is_auction AND status = 'active';
    """)
    op.execute("CREATE INDEX idx_listings_seller ON listings (seller_id, created_at DESC);")
    op.execute("""
        CREATE TRIGGER trg_listings_updated_at
            BEFORE UPDATE ON listings
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)

    op.execute("""
        CREATE TABLE listing_transitions (
            id              BIGSERIAL       PRIMARY KEY,
            listing_id      VARCHAR(32)     NOT NULL REFERENCES listings (id),
            from_status     VARCHAR(20)     NOT NULL,
            to_status       VARCHAR(20)     NOT NULL,
            action          VARCHAR(20)     NOT NULL,
            actor_id        VARCHAR(64),
            note            VARCHAR(500),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_listing_transitions_action CHECK (
                action IN ('activate', 'close', 'sell_out', 'sell', 'cancel')
            )
        );
    """)
    op.execute("CREATE INDEX idx_listing_transitions_listing ON listing_transitions (listing_id, id);")
    op.execute("COMMENT ON TABLE listing_transitions IS 'Listing state machine audit log, append-only';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS listing_transitions CASCADE;")
    op.execute("DROP TABLE IF EXISTS listings CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_touch_updated_at();")
