"""005: create orders, order_items, order_status_history

Revision ID: 005
Revises: 004
Create Date: 2026-10-06
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE orders (
            id                VARCHAR(32)     PRIMARY KEY,
            order_number      VARCHAR(40)     NOT NULL,
            buyer_id          VARCHAR(64)     NOT NULL,
            status            VARCHAR(20)     NOT NULL DEFAULT 'pending',
            payment_method    VARCHAR(20)     NOT NULL,
            currency          CHAR(3)         NOT NULL DEFAULT 'USD',
            subtotal_cents    BIGINT          NOT NULL,
            discount_cents    BIGINT          NOT NULL DEFAULT 0,
            tax_cents         BIGINT          NOT NULL DEFAULT 0,
            shipping_cents    BIGINT          NOT NULL DEFAULT 0,
            total_cents       BIGINT          NOT NULL,
            refunded_cents    BIGINT,
            coupon_id         VARCHAR(32)     REFERENCES coupons (id),
            coupon_code       VARCHAR(50),
            source_bid_id     VARCHAR(32)     REFERENCES bids (id),
            shipping_address  JSONB,
            created_at        TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at        TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_orders_order_number   UNIQUE (order_number),
            CONSTRAINT ck_orders_status CHECK (
                status IN ('pending', 'processing', 'confirmed', 'shipped',
                           'delivered', 'cancelled', 'refunded')
            ),
            CONSTRAINT ck_orders_payment_method CHECK (
                payment_method IN ('paypal', 'stripe', 'cod', 'bank_transfer')
            ),
            CONSTRAINT ck_orders_discount_range CHECK (
                discount_cents >= 0 AND discount_cents <= subtotal_cents
            ),
            CONSTRAINT ck_orders_total CHECK (
                total_cents = subtotal_cents - discount_cents + tax_cents + shipping_cents
            ),
            CONSTRAINT ck_orders_refund_range CHECK (
                refunded_cents IS NULL OR (refunded_cents > 0 AND refunded_cents <= total_cents)
            )
        );
    """)
    # One order per winning bid: the last line of defence against double settlement.
    op.execute("""
        CREATE UNIQUE INDEX uq_orders_source_bid
        ON orders (source_bid_id)
        WHERE source_bid_id IS NOT NULL;
    """)
    op.execute("CREATE INDEX idx_orders_buyer ON orders (buyer_id, id DESC);")
    op.execute("""
        CREATE TRIGGER trg_orders_updated_at
            BEFORE UPDATE ON orders
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)

    op.execute("""
        CREATE TABLE order_items (
            id                BIGSERIAL       PRIMARY KEY,
            order_id          VARCHAR(32)     NOT NULL REFERENCES orders (id),
            listing_id        VARCHAR(32)     NOT NULL REFERENCES listings (id),
            seller_id         VARCHAR(64)     NOT NULL,
            title             VARCHAR(200)    NOT NULL,
            category_id       VARCHAR(64),
            quantity          INT             NOT NULL,
            unit_price_cents  BIGINT          NOT NULL,
            shipping_cents    BIGINT,
            CONSTRAINT ck_order_items_quantity_positive CHECK (quantity > 0)
        );
    """)
    op.execute("CREATE INDEX idx_order_items_order ON order_items (order_id);")
    op.execute("CREATE INDEX idx_order_items_seller ON order_items (seller_id, order_id);")
    op.execute("CREATE INDEX idx_order_items_listing ON order_items (listing_id);")

    op.execute("""
        CREATE TABLE order_status_history (
            id          BIGSERIAL       PRIMARY KEY,
            order_id    VARCHAR(32)     NOT NULL REFERENCES orders (id),
            status      VARCHAR(20)     NOT NULL,
            note        VARCHAR(500),
            actor_id    VARCHAR(64),
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_order_status_history_order ON order_status_history (order_id, id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS order_status_history CASCADE;")
    op.execute("DROP TABLE IF EXISTS order_items CASCADE;")
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
