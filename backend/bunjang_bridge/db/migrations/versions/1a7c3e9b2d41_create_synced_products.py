"""create synced_products

Revision ID: 1a7c3e9b2d41
Revises:
Create Date: 2026-09-28 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c3e9b2d41'
down_revision = None
branch_labels = None
depends_on = None


SYNC_STATUS_VALUES = ('SYNCED', 'ERROR', 'PENDING', 'PARTIAL_ERROR', 'SKIPPED_NO_CHANGE')
LISTING_STATUS_VALUES = ('ACTIVE', 'DRAFT', 'ARCHIVED')


def upgrade() -> None:
    sync_status = sa.Enum(*SYNC_STATUS_VALUES, name='sync_status')
    listing_status = sa.Enum(*LISTING_STATUS_VALUES, name='shopify_listing_status')

    op.create_table(
        'synced_products',
        sa.Column('bunjang_pid', sa.String(length=64), nullable=False),
        sa.Column('shopify_gid', sa.String(length=255), nullable=True),
        sa.Column('shopify_product_id', sa.String(length=64), nullable=True),
        sa.Column('shopify_handle', sa.String(length=255), nullable=True),
        sa.Column('bunjang_product_name', sa.String(length=512), nullable=True),
        sa.Column('bunjang_category_id', sa.String(length=64), nullable=True),
        sa.Column('bunjang_brand_id', sa.String(length=64), nullable=True),
        sa.Column('bunjang_seller_uid', sa.String(length=64), nullable=True),
        sa.Column('bunjang_condition', sa.String(length=64), nullable=True),
        sa.Column('bunjang_original_price_krw', sa.Integer(), nullable=True),
        sa.Column('bunjang_original_shipping_fee_krw', sa.Integer(), nullable=True),
        sa.Column('bunjang_quantity', sa.Integer(), nullable=True),
        sa.Column('bunjang_options_json', sa.Text(), nullable=True),
        sa.Column('bunjang_images_json', sa.Text(), nullable=True),
        sa.Column('bunjang_keywords_json', sa.Text(), nullable=True),
        sa.Column('bunjang_created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('bunjang_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shopify_product_type', sa.String(length=255), nullable=True),
        sa.Column('shopify_listed_price_usd', sa.String(length=32), nullable=True),
        sa.Column('shopify_status', listing_status, nullable=True),
        sa.Column('last_sync_attempt_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('last_successful_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_inventory_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sync_status', sync_status, nullable=False, server_default='PENDING'),
        sa.Column('sync_error_message', sa.String(length=1000), nullable=True),
        sa.Column('sync_error_stack_sample', sa.String(length=2000), nullable=True),
        sa.Column('sync_retry_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_filtered_out', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('bunjang_pid', name=op.f('pk_synced_products')),
        sa.UniqueConstraint('shopify_gid', name=op.f('uq_synced_products_shopify_gid')),
    )

    op.create_index(op.f('ix_synced_products_shopify_product_id'), 'synced_products', ['shopify_product_id'])
    op.create_index(op.f('ix_synced_products_shopify_handle'), 'synced_products', ['shopify_handle'])
    op.create_index(op.f('ix_synced_products_bunjang_category_id'), 'synced_products', ['bunjang_category_id'])
    op.create_index(op.f('ix_synced_products_bunjang_brand_id'), 'synced_products', ['bunjang_brand_id'])
    op.create_index(op.f('ix_synced_products_bunjang_seller_uid'), 'synced_products', ['bunjang_seller_uid'])
    op.create_index(op.f('ix_synced_products_bunjang_updated_at'), 'synced_products', ['bunjang_updated_at'])
    op.create_index(op.f('ix_synced_products_shopify_status'), 'synced_products', ['shopify_status'])
    op.create_index(op.f('ix_synced_products_last_sync_attempt_at'), 'synced_products', ['last_sync_attempt_at'])
    op.create_index(op.f('ix_synced_products_last_successful_sync_at'), 'synced_products', ['last_successful_sync_at'])
    op.create_index(op.f('ix_synced_products_sync_status'), 'synced_products', ['sync_status'])
    op.create_index(op.f('ix_synced_products_is_filtered_out'), 'synced_products', ['is_filtered_out'])
    op.create_index('idx_synced_products_status_attempt', 'synced_products', ['sync_status', 'last_sync_attempt_at'])


def downgrade() -> None:
    op.drop_index('idx_synced_products_status_attempt', table_name='synced_products')
    for col in (
        'is_filtered_out', 'sync_status', 'last_successful_sync_at', 'last_sync_attempt_at',
        'shopify_status', 'bunjang_updated_at', 'bunjang_seller_uid', 'bunjang_brand_id',
        'bunjang_category_id', 'shopify_handle', 'shopify_product_id',
    ):
        op.drop_index(op.f(f'ix_synced_products_{col}'), table_name='synced_products')
    op.drop_table('synced_products')
    sa.Enum(name='sync_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='shopify_listing_status').drop(op.get_bind(), checkfirst=True)
