"""003: create reservations table

Revision ID: 003
Revises: 002
Create Date: 2026-10-05
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE reservations (
            id                  VARCHAR(32)     PRIMARY KEY,
            listing_id          VARCHAR(32)     NOT NULL REFERENCES listings (id),
            holder_id           VARCHAR(64)     NOT NULL,
            quantity            INT             NOT NULL,
            currency            CHAR(3)         NOT NULL DEFAULT 'USD',
            unit_price_cents    BIGINT          NOT NULL,
            shipping_cents      BIGINT,
            seller_id           VARCHAR(64)     NOT NULL,
            title               VARCHAR(200)    NOT NULL,
            category_id         VARCHAR(64),
            expires_at          TIMESTAMPTZ     NOT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_reservations_quantity_positive CHECK (quantity > 0)
        );
    """)
    op.execute("CREATE INDEX idx_reservations_listing_expiry ON reservations (listing_id, expires_at);")
    op.execute("CREATE INDEX idx_reservations_expiry ON reservations (expires_at);")
    op.execute("CREATE INDEX idx_reservations_holder ON reservations (holder_id);")
    op.execute("COMMENT ON TABLE reservations IS 'Time-boxed stock holds; deleted on commit, release or sweep';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS reservations CASCADE;")
