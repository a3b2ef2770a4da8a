"""create_entitlements_table

Revision ID: 3c5e2a9d41f7
Revises:
Create Date: 2025-10-17 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c5e2a9d41f7'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'entitlements',
        sa.Column('user_id', sa.String(length=64), nullable=False, comment='用户ID（认证系统的 subject）'),
        sa.Column('is_premium', sa.Boolean(), nullable=False, server_default=sa.false(), comment='是否已开通 premium'),
        sa.Column('premium_granted_at', sa.DateTime(timezone=True), nullable=True, comment='premium 开通时间'),
        sa.Column('purchased_slot_count', sa.Integer(), nullable=False, server_default='0', comment='已购买车位数'),
        sa.Column('provider_customer_id', sa.String(length=255), nullable=True, comment='支付渠道客户ID'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('user_id', name='pk_entitlements'),
        sa.CheckConstraint('purchased_slot_count >= 0', name='ck_entitlements_slot_count_non_negative'),
        comment='用户权益表：由支付事件派生的 premium 标记与车位数'
    )

    op.create_index('ix_entitlements_provider_customer_id', 'entitlements', ['provider_customer_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_entitlements_provider_customer_id', table_name='entitlements')
    op.drop_table('entitlements')
