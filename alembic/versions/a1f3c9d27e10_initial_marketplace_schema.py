"""initial marketplace schema

Revision ID: a1f3c9d27e10
Revises:
Create Date: 2026-10-18 09:12:40.511203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel

# revision identifiers, used by Alembic.
revision: str = 'a1f3c9d27e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('full_name', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('role', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('can_login', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_email', 'user', ['email'])

    op.create_table(
        'plugin',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('slug', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('category', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('thumbnail', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('rating', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_featured', sa.Boolean(), nullable=False),
        sa.Column('file_path', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('file_version', sa.Integer(), nullable=True),
        sa.Column('download_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_plugin_slug', 'plugin', ['slug'])

    op.create_table(
        'bundle',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('plugin_ids', sa.JSON(), nullable=True),
        sa.Column('features', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_featured', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'discount',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column(
            'discount_type',
            sa.Enum('percentage', 'fixed', name='discounttype'),
            nullable=False,
        ),
        sa.Column('discount_value', sa.Float(), nullable=False),
        sa.Column('min_amount', sa.Float(), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), nullable=False),
        sa.Column('valid_from', sa.DateTime(), nullable=False),
        sa.Column('valid_until', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('applies_to', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_discount_code', 'discount', ['code'], unique=True)

    op.create_table(
        'savedcart',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_key', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('items', sa.JSON(), nullable=True),
        sa.Column('applied_coupon', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_savedcart_owner_key', 'savedcart', ['owner_key'], unique=True)

    op.create_table(
        'order',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('items', sa.JSON(), nullable=True),
        sa.Column('subtotal_amount', sa.Float(), nullable=False),
        sa.Column('discount_amount', sa.Float(), nullable=False),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('currency', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('status', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('payment_provider', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('payment_session_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('provider_transaction_id', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('customer_info', sa.JSON(), nullable=True),
        sa.Column('cart_owner_key', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['customer_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_customer_id', 'order', ['customer_id'])
    op.create_index('ix_order_status', 'order', ['status'])
    op.create_index('ix_order_payment_session_id', 'order', ['payment_session_id'], unique=True)
    op.create_index('ix_order_provider_transaction_id', 'order', ['provider_transaction_id'])

    op.create_table(
        'couponredemption',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('discount_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['discount_id'], ['discount.id']),
        sa.ForeignKeyConstraint(['order_id'], ['order.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id'),
    )
    op.create_index('ix_couponredemption_discount_id', 'couponredemption', ['discount_id'])

    op.create_table(
        'plugindownload',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('plugin_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('secure_token', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('downloaded_at', sa.DateTime(), nullable=True),
        sa.Column('ip_address', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('user_agent', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['order.id']),
        sa.ForeignKeyConstraint(['plugin_id'], ['plugin.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_plugindownload_order_id', 'plugindownload', ['order_id'])
    op.create_index('ix_plugindownload_plugin_id', 'plugindownload', ['plugin_id'])
    op.create_index('ix_plugindownload_customer_id', 'plugindownload', ['customer_id'])

    op.create_table(
        'downloadevent',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('download_id', sa.Integer(), nullable=False),
        sa.Column('ip_address', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('user_agent', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('first_redemption', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['download_id'], ['plugindownload.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_downloadevent_download_id', 'downloadevent', ['download_id'])

    op.create_table(
        'review',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('plugin_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('review_text', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('is_verified_purchase', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['plugin_id'], ['plugin.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['user.id']),
        sa.ForeignKeyConstraint(['order_id'], ['order.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('plugin_id', 'customer_id'),
    )
    op.create_index('ix_review_plugin_id', 'review', ['plugin_id'])

    op.create_table(
        'notification',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column(
            'recipient_role',
            sa.Enum('admin', 'customer', name='recipientrole'),
            nullable=False,
        ),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('trigger_source', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('related_id', sa.Integer(), nullable=True),
        sa.Column('title', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('content', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column(
            'channel',
            sa.Enum('email', 'system', name='notificationchannel'),
            nullable=False,
        ),
        sa.Column(
            'status',
            sa.Enum('sent', 'failed', name='notificationstatus'),
            nullable=False,
        ),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade():
    op.drop_table('notification')
    op.drop_index('ix_review_plugin_id', table_name='review')
    op.drop_table('review')
    op.drop_index('ix_downloadevent_download_id', table_name='downloadevent')
    op.drop_table('downloadevent')
    op.drop_index('ix_plugindownload_customer_id', table_name='plugindownload')
    op.drop_index('ix_plugindownload_plugin_id', table_name='plugindownload')
    op.drop_index('ix_plugindownload_order_id', table_name='plugindownload')
    op.drop_table('plugindownload')
    op.drop_index('ix_couponredemption_discount_id', table_name='couponredemption')
    op.drop_table('couponredemption')
    op.drop_index('ix_order_provider_transaction_id', table_name='order')
    op.drop_index('ix_order_payment_session_id', table_name='order')
    op.drop_index('ix_order_status', table_name='order')
    op.drop_index('ix_order_customer_id', table_name='order')
    op.drop_table('order')
    op.drop_index('ix_savedcart_owner_key', table_name='savedcart')
    op.drop_table('savedcart')
    op.drop_index('ix_discount_code', table_name='discount')
    op.drop_table('discount')
    op.drop_table('bundle')
    op.drop_index('ix_plugin_slug', table_name='plugin')
    op.drop_table('plugin')
    op.drop_index('ix_user_email', table_name='user')
    op.drop_table('user')

    sa.Enum(name='notificationstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='notificationchannel').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='recipientrole').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='discounttype').drop(op.get_bind(), checkfirst=True)
