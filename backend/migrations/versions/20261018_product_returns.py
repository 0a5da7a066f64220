"""Add product returns and sale status

Revision ID: 20261018_returns
Revises: 20261017_initial
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_returns"
down_revision = "20261017_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column("status", sa.String(length=16), nullable=False, server_default="COMPLETED")
        )

    op.create_table("product_returns",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("presentation_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Numeric(precision=12, scale=3), nullable=False),
        sa.Column("base_quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("total", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("refund_method", sa.String(length=32), nullable=True),
        sa.Column("reason", sa.String(length=255), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("base_quantity > 0", name="ck_product_returns_base_quantity_positive"),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"], ),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], ),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ),
        sa.ForeignKeyConstraint(["presentation_id"], ["presentations.id"], ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True
    )
    op.create_index("ix_product_returns_warehouse_id", "product_returns", ["warehouse_id"], unique=False)
    op.create_index("ix_product_returns_sale_id", "product_returns", ["sale_id"], unique=False)
    op.create_index("ix_product_returns_product_id", "product_returns", ["product_id"], unique=False)
    op.create_index("ix_product_returns_created_at", "product_returns", ["created_at"], unique=False)
    op.create_index(
        "ix_product_returns_warehouse_created", "product_returns", ["warehouse_id", "created_at"], unique=False
    )


def downgrade():
    op.drop_index("ix_product_returns_warehouse_created", table_name="product_returns")
    op.drop_index("ix_product_returns_created_at", table_name="product_returns")
    op.drop_index("ix_product_returns_product_id", table_name="product_returns")
    op.drop_index("ix_product_returns_sale_id", table_name="product_returns")
    op.drop_index("ix_product_returns_warehouse_id", table_name="product_returns")
    op.drop_table("product_returns")

    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.drop_column("status")
