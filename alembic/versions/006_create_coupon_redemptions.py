"""006: create coupon_redemptions table

Revision ID: 006
Revises: 005
Create Date: 2026-10-06
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # order_id FK is deferred: settlement records the redemption before it
    # inserts the order, inside the same transaction.
    op.execute("""
        CREATE TABLE coupon_redemptions (
            id          BIGSERIAL       PRIMARY KEY,
            coupon_id   VARCHAR(32)     NOT NULL REFERENCES coupons (id),
            user_id     VARCHAR(64)     NOT NULL,
            order_id    VARCHAR(32)     NOT NULL
                        REFERENCES orders (id) DEFERRABLE INITIALLY DEFERRED,
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_coupon_redemptions_order UNIQUE (coupon_id, order_id)
        );
    """)
    op.execute("CREATE INDEX idx_coupon_redemptions_user ON coupon_redemptions (coupon_id, user_id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS coupon_redemptions CASCADE;")
