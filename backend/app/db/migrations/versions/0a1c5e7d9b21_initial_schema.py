"""initial schema: shops, schedules, locks, cursors, order facts, derived metrics

Revision ID: 0a1c5e7d9b21
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""
from datetime import datetime, timezone

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '0a1c5e7d9b21'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def _quarter_start(year: int, quarter: int) -> datetime:
    year += (quarter - 1) // 4
    quarter = (quarter - 1) % 4 + 1
    return datetime(year, (quarter - 1) * 3 + 1, 1, tzinfo=timezone.utc)


def upgrade() -> None:
    op.create_table(
        'shops',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('provider', sa.String(length=32), server_default='shoptet', nullable=False),
        sa.Column('base_url', sa.String(length=255), nullable=True),
        sa.Column('api_token', sa.String(length=255), nullable=True),
        sa.Column('timezone', sa.String(length=64), server_default='Europe/Prague', nullable=False),
        sa.Column('currency_code', sa.String(length=3), nullable=True),
        sa.Column('is_master', sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_shops'),
    )

    op.create_table(
        'job_schedules',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('job_type', sa.String(length=100), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=True),
        sa.Column('options', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('frequency', sa.String(length=50), server_default='custom', nullable=False),
        sa.Column('cron_expression', sa.String(length=100), nullable=False),
        sa.Column('timezone', sa.String(length=64), server_default='Europe/Prague', nullable=False),
        sa.Column('enabled', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_run_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_run_ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_run_status', sa.String(length=20), server_default='idle', nullable=False),
        sa.Column('last_run_message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "last_run_status IN ('idle','queued','running','completed','failed','skipped')",
            name='ck_job_schedules_last_run_status',
        ),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name='fk_job_schedules_shop_id_shops', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_job_schedules'),
    )
    op.create_index('ix_job_schedules_job_type_enabled', 'job_schedules', ['job_type', 'enabled'])

    op.create_table(
        'job_locks',
        sa.Column('lock_key', sa.String(length=255), nullable=False),
        sa.Column('owner', sa.String(length=64), nullable=False),
        sa.Column('acquired_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('lock_key', name='pk_job_locks'),
    )
    op.create_index('ix_job_locks_expires_at', 'job_locks', ['expires_at'])

    op.create_table(
        'shop_sync_cursors',
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('cursor', sa.Text(), nullable=True),
        sa.Column('meta', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name='fk_shop_sync_cursors_shop_id_shops', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('shop_id', 'key', name='pk_shop_sync_cursors'),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('guid', sa.String(length=64), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name='fk_products_shop_id_shops', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.UniqueConstraint('guid', name='uq_products_guid'),
    )

    op.create_table(
        'product_variants',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('product_id', sa.BigInteger(), nullable=False),
        sa.Column('code', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_product_variants_product_id_products', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_product_variants'),
    )
    op.create_index('ix_product_variants_code', 'product_variants', ['code'])

    op.create_table(
        'customers',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('guid', sa.String(length=64), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_vip', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name='fk_customers_shop_id_shops', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_customers'),
        sa.UniqueConstraint('guid', name='uq_customers_guid'),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('guid', sa.String(length=64), nullable=True),
        sa.Column('shop_id', sa.Integer(), nullable=True),
        sa.Column('customer_guid', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=128), nullable=True),
        sa.Column('source', sa.String(length=128), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=64), nullable=True),
        sa.Column('ordered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('change_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('currency_code', sa.String(length=3), nullable=True),
        sa.Column('total_with_vat', sa.Float(), nullable=True),
        sa.Column('total_without_vat', sa.Float(), nullable=True),
        sa.Column('total_vat', sa.Float(), nullable=True),
        sa.Column('total_with_vat_base', sa.Float(), nullable=True),
        sa.Column('total_without_vat_base', sa.Float(), nullable=True),
        sa.Column('total_vat_base', sa.Float(), nullable=True),
        sa.Column('price', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('billing_address', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('delivery_address', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('payment', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('shipping', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name='fk_orders_shop_id_shops', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('code', name='uq_orders_code'),
    )
    op.create_index('ix_orders_customer_guid_status', 'orders', ['customer_guid', 'status'])
    op.create_index('ix_orders_shop_id_ordered_at', 'orders', ['shop_id', 'ordered_at'])

    # order_items: RANGE partitioned by created_at; op.create_table cannot express PARTITION BY
    op.execute(
        """
        CREATE TABLE order_items (
            id                uuid        NOT NULL,
            created_at        timestamptz NOT NULL,
            order_id          bigint      NOT NULL REFERENCES orders (id) ON DELETE CASCADE,
            product_guid      varchar(64),
            item_type         varchar(64),
            name              varchar(255) NOT NULL DEFAULT 'Unknown item',
            variant_name      varchar(255),
            code              varchar(128),
            ean               varchar(64),
            amount            double precision NOT NULL DEFAULT 0,
            amount_unit       varchar(32),
            price_with_vat    double precision,
            price_without_vat double precision,
            vat               double precision,
            vat_rate          double precision,
            data              jsonb,
            CONSTRAINT pk_order_items PRIMARY KEY (id, created_at)
        ) PARTITION BY RANGE (created_at)
        """
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_code', 'order_items', ['code'])

    # current + next quarter; the maintenance task keeps the horizon rolling from here
    now = datetime.now(timezone.utc)
    current_q = (now.month - 1) // 3 + 1
    for offset in (0, 1):
        start = _quarter_start(now.year, current_q + offset)
        end = _quarter_start(now.year, current_q + offset + 1)
        name = f"order_items_{start.year}_q{(start.month - 1) // 3 + 1}"
        op.execute(
            f"CREATE TABLE IF NOT EXISTS \"{name}\" PARTITION OF order_items "
            f"FOR VALUES FROM ('{start.isoformat()}') TO ('{end.isoformat()}')"
        )
    # rows outside every quarter (backfills older than retention) land here instead of failing
    op.execute("CREATE TABLE IF NOT EXISTS order_items_default PARTITION OF order_items DEFAULT")

    op.create_table(
        'customer_metrics',
        sa.Column('customer_guid', sa.String(length=64), nullable=False),
        sa.Column('orders_count', sa.Integer(), nullable=False),
        sa.Column('total_spent', sa.Float(), server_default='0', nullable=False),
        sa.Column('total_spent_base', sa.Float(), server_default='0', nullable=False),
        sa.Column('average_order_value', sa.Float(), server_default='0', nullable=False),
        sa.Column('average_order_value_base', sa.Float(), server_default='0', nullable=False),
        sa.Column('first_order_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_order_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('orders_count > 0', name='ck_customer_metrics_orders_count_positive'),
        sa.PrimaryKeyConstraint('customer_guid', name='pk_customer_metrics'),
    )

    op.create_table(
        'customer_tag_rules',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tag_key', sa.String(length=64), nullable=False),
        sa.Column('label', sa.String(length=255), nullable=False),
        sa.Column('color', sa.String(length=32), nullable=True),
        sa.Column('priority', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('set_vip', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('match_type', sa.String(length=8), server_default='all', nullable=False),
        sa.Column('conditions', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_customer_tag_rules'),
    )

    op.create_table(
        'inventory_variant_metrics',
        sa.Column('product_variant_id', sa.BigInteger(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('lifetime_orders_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('lifetime_quantity', sa.Float(), server_default='0', nullable=False),
        sa.Column('lifetime_revenue', sa.Float(), server_default='0', nullable=False),
        sa.Column('last_30_orders_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_30_quantity', sa.Float(), server_default='0', nullable=False),
        sa.Column('last_30_revenue', sa.Float(), server_default='0', nullable=False),
        sa.Column('last_90_orders_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_90_quantity', sa.Float(), server_default='0', nullable=False),
        sa.Column('last_90_revenue', sa.Float(), server_default='0', nullable=False),
        sa.Column('average_daily_sales', sa.Float(), server_default='0', nullable=False),
        sa.Column('last_sale_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['product_variant_id'], ['product_variants.id'],
            name='fk_inventory_variant_metrics_product_variant_id_product_variants', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], name='fk_inventory_variant_metrics_shop_id_shops', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('product_variant_id', 'shop_id', name='pk_inventory_variant_metrics'),
    )


def downgrade() -> None:
    op.drop_table('inventory_variant_metrics')
    op.drop_table('customer_tag_rules')
    op.drop_table('customer_metrics')
    op.execute("DROP TABLE IF EXISTS order_items CASCADE")
    op.drop_index('ix_orders_shop_id_ordered_at', table_name='orders')
    op.drop_index('ix_orders_customer_guid_status', table_name='orders')
    op.drop_table('orders')
    op.drop_table('customers')
    op.drop_index('ix_product_variants_code', table_name='product_variants')
    op.drop_table('product_variants')
    op.drop_table('products')
    op.drop_table('shop_sync_cursors')
    op.drop_index('ix_job_locks_expires_at', table_name='job_locks')
    op.drop_table('job_locks')
    op.drop_index('ix_job_schedules_job_type_enabled', table_name='job_schedules')
    op.drop_table('job_schedules')
    op.drop_table('shops')
