"""004: create coupons table

Revision ID: 004
Revises: 003
Create Date: 2026-10-05
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE coupons (
            id                       VARCHAR(32)     PRIMARY KEY,
            code                     VARCHAR(50)     NOT NULL,
            description              VARCHAR(500)    NOT NULL DEFAULT '',
            discount_type            VARCHAR(20)     NOT NULL,
            discount_value           BIGINT          NOT NULL,
            currency                 CHAR(3)         NOT NULL DEFAULT 'USD',
            max_discount_cents       BIGINT,
            min_purchase_cents       BIGINT          NOT NULL DEFAULT 0,
            usage_cap                INT,
            used_count               INT             NOT NULL DEFAULT 0,
            per_user_limit           INT             DEFAULT 1,
            applicable_product_ids   TEXT[]          NOT NULL DEFAULT '{}',
            applicable_category_ids  TEXT[]          NOT NULL DEFAULT '{}',
            starts_at                TIMESTAMPTZ     NOT NULL,
            ends_at                  TIMESTAMPTZ     NOT NULL,
            seller_id                VARCHAR(64)     NOT NULL,
            is_active                BOOLEAN         NOT NULL DEFAULT TRUE,
            created_at               TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_coupons_code           UNIQUE (code),
            CONSTRAINT ck_coupons_code_upper     CHECK (code = UPPER(code)),
            CONSTRAINT ck_coupons_discount_type  CHECK (discount_type IN ('percentage', 'fixed')),
            CONSTRAINT ck_coupons_value          CHECK (
                (discount_type = 'percentage' AND discount_value BETWEEN 1 AND 100)
                OR (discount_type = 'fixed' AND discount_value > 0)
            ),
            CONSTRAINT ck_coupons_usage          CHECK (
                used_count >= 0 AND (usage_cap IS NULL OR used_count <= usage_cap)
            ),
            CONSTRAINT ck_coupons_window         CHECK (ends_at > starts_at)
        );
    """)
    op.execute("CREATE INDEX idx_coupons_seller ON coupons (seller_id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS coupons CASCADE;")
