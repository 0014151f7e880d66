"""Initial schema - products and the append-only events log

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('seller_id', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), server_default='', nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('quantity', sa.Integer(), server_default='0', nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_seller_id', 'products', ['seller_id'])
    op.create_index('idx_products_seller_quantity', 'products', ['seller_id', 'quantity'])
    op.create_index('idx_products_seller_category', 'products', ['seller_id', 'category'])

    op.create_table(
        'events',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('seller_id', sa.String(length=255), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('payload', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_events_seller_id', 'events', ['seller_id'])
    op.create_index('ix_events_product_id', 'events', ['product_id'])
    op.create_index('idx_events_type_seller', 'events', ['type', 'seller_id'])
    op.create_index('idx_events_dedup', 'events', ['type', 'product_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('idx_events_dedup', table_name='events')
    op.drop_index('idx_events_type_seller', table_name='events')
    op.drop_index('ix_events_product_id', table_name='events')
    op.drop_index('ix_events_seller_id', table_name='events')
    op.drop_table('events')
    op.drop_index('idx_products_seller_category', table_name='products')
    op.drop_index('idx_products_seller_quantity', table_name='products')
    op.drop_index('ix_products_seller_id', table_name='products')
    op.drop_table('products')
