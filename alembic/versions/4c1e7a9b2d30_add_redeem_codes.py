"""add redeem_codes and redeem_code_redemptions

Revision ID: 4c1e7a9b2d30
Revises:
Create Date: 2026-10-17 23:04:12.518344

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4c1e7a9b2d30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


code_kind = sa.Enum("download", "discount", "product_unlock", name="codekind")


def upgrade() -> None:
    op.create_table(
        "redeem_codes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("code", sa.String(length=100), nullable=False),
        sa.Column("kind", code_kind, nullable=False),
        sa.Column("value", sa.JSON(), nullable=False),
        sa.Column("product_id", sa.String(length=100), nullable=True),
        sa.Column("is_master_code", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.CheckConstraint(
            "(is_master_code AND product_id IS NULL) OR (NOT is_master_code AND product_id IS NOT NULL)",
            name="ck_redeem_codes_scope",
        ),
        sa.CheckConstraint("usage_count >= 0", name="ck_redeem_codes_usage_count"),
        sa.CheckConstraint("usage_limit IS NULL OR usage_limit > 0", name="ck_redeem_codes_usage_limit"),
        sa.CheckConstraint(
            "usage_limit IS NULL OR usage_count <= usage_limit",
            name="ck_redeem_codes_usage_within_limit",
        ),
    )
    op.create_index("ix_redeem_codes_code", "redeem_codes", ["code"], unique=True)
    op.create_index("ix_redeem_codes_product_id", "redeem_codes", ["product_id"], unique=False)

    op.create_table(
        "redeem_code_redemptions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "redeem_code_id",
            sa.String(length=36),
            sa.ForeignKey("redeem_codes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_id", sa.String(length=100), nullable=False),
        sa.Column(
            "redeemed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    )
    op.create_index(
        "ix_redeem_code_redemptions_redeem_code_id",
        "redeem_code_redemptions",
        ["redeem_code_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(
        "ix_redeem_code_redemptions_redeem_code_id",
        table_name="redeem_code_redemptions",
    )
    op.drop_table("redeem_code_redemptions")
    op.drop_index("ix_redeem_codes_product_id", table_name="redeem_codes")
    op.drop_index("ix_redeem_codes_code", table_name="redeem_codes")
    op.drop_table("redeem_codes")
    code_kind.drop(op.get_bind(), checkfirst=True)
