"""movement ledger schema

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-19 00:00:00.000000

This migration creates the bookstock schema from scratch:
- stock_locations: Depot and library branches (code matched exactly by clients)
- products / stock_levels: Catalog and on-hand quantities per location
- movements / movement_items: Inter-stock movement ledger
- movement_sequences: Per-source-location movement number counters
- movement_events: Append-only movement audit trail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7c1d2e3f4a5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # stock_locations
    # ============================================================================
    op.create_table(
        'stock_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_stock_locations_code'),
        sa.UniqueConstraint('name', name='uq_stock_locations_name'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # products: Catalog (price only pre-fills movement lines)
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference', name='uq_products_reference'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_name', 'products', ['name'])

    op.create_table(
        'stock_levels',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['location_id'], ['stock_locations.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'product_id', name='uq_stock_levels_location_product'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_levels_location_id', 'stock_levels', ['location_id'])
    op.create_index('ix_stock_levels_product_id', 'stock_levels', ['product_id'])

    # ============================================================================
    # movements: pending -> confirmed | claimed (destination only)
    # ============================================================================
    op.create_table(
        'movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('movement_number', sa.String(length=64), nullable=False),
        sa.Column('source_location_id', sa.Integer(), nullable=False),
        sa.Column('destination_location_id', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('recipient_name', sa.String(length=255), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('claim_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_by', sa.Integer(), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claimed_by', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('source_location_id <> destination_location_id',
                           name='ck_movements_distinct_locations'),
        sa.ForeignKeyConstraint(['source_location_id'], ['stock_locations.id'], ),
        sa.ForeignKeyConstraint(['destination_location_id'], ['stock_locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('movement_number', name='uq_movements_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_movements_source_location_id', 'movements', ['source_location_id'])
    op.create_index('ix_movements_destination_location_id', 'movements', ['destination_location_id'])
    op.create_index('ix_movements_status', 'movements', ['status'])
    op.create_index('ix_movements_created_at', 'movements', ['created_at'])
    op.create_index('ix_movements_destination_status', 'movements', ['destination_location_id', 'status'])
    op.create_index('ix_movements_source_status', 'movements', ['source_location_id', 'status'])

    op.create_table(
        'movement_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('movement_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_movement_items_quantity_positive'),
        sa.CheckConstraint('unit_price >= 0', name='ck_movement_items_unit_price_non_negative'),
        sa.ForeignKeyConstraint(['movement_id'], ['movements.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_movement_items_movement_id', 'movement_items', ['movement_id'])
    op.create_index('ix_movement_items_product_id', 'movement_items', ['product_id'])

    # ============================================================================
    # movement_sequences: MOV-<location>-<n> counters
    # ============================================================================
    op.create_table(
        'movement_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['location_id'], ['stock_locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', name='uq_movement_sequences_location'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_movement_sequences_location_id', 'movement_sequences', ['location_id'])

    # ============================================================================
    # movement_events: append-only audit trail
    # ============================================================================
    op.create_table(
        'movement_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('movement_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('note', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['movement_id'], ['movements.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['location_id'], ['stock_locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_movement_events_movement_id', 'movement_events', ['movement_id'])
    op.create_index('ix_movement_events_event_type', 'movement_events', ['event_type'])
    op.create_index('ix_movement_events_location_id', 'movement_events', ['location_id'])
    op.create_index('ix_movement_events_actor_id', 'movement_events', ['actor_id'])
    op.create_index('ix_movement_events_occurred_at', 'movement_events', ['occurred_at'])
    op.create_index('ix_movement_events_movement_occurred', 'movement_events', ['movement_id', 'occurred_at'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('movement_events')
    op.drop_table('movement_sequences')
    op.drop_table('movement_items')
    op.drop_table('movements')
    op.drop_table('stock_levels')
    op.drop_table('products')
    op.drop_table('stock_locations')
