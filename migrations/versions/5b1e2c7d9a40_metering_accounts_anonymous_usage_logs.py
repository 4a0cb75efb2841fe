"""metering: accounts, anonymous_usage, usage_logs

Revision ID: 5b1e2c7d9a40
Revises:
Create Date: 2026-10-19 09:12:44.118203
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b1e2c7d9a40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # --- ACCOUNTS ---
    op.create_table(
        'accounts',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('plan', sa.String(length=16), nullable=False, server_default='FREE'),
        sa.Column('bonus_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bonus_granted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('daily_consumed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_reset_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('daily_consumed >= 0', name='ck_accounts_daily_consumed_nonneg'),
        sa.CheckConstraint('bonus_balance >= 0', name='ck_accounts_bonus_balance_nonneg'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('accounts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_accounts_email'), ['email'], unique=False)
        batch_op.create_index(batch_op.f('ix_accounts_plan'), ['plan'], unique=False)
        batch_op.create_index('idx_accounts_created_at', ['created_at'], unique=False)

    # --- ANONYMOUS (ip, date) ---
    op.create_table(
        'anonymous_usage',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ip_address', sa.String(length=64), nullable=False),
        sa.Column('usage_date', sa.Date(), nullable=False),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('usage_count >= 0', name='ck_anonymous_usage_count_nonneg'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ip_address', 'usage_date', name='uq_anonymous_ip_date'),
    )
    with op.batch_alter_table('anonymous_usage', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_anonymous_usage_ip_address'), ['ip_address'], unique=False)
        batch_op.create_index(batch_op.f('ix_anonymous_usage_usage_date'), ['usage_date'], unique=False)

    # --- USAGE LOGS (append-only) ---
    op.create_table(
        'usage_logs',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('caller_id', sa.String(length=255), nullable=False),
        sa.Column('caller_kind', sa.String(length=16), nullable=False),
        sa.Column('tool_type', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('usage_logs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_usage_logs_caller_id'), ['caller_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_usage_logs_tool_type'), ['tool_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_usage_logs_created_at'), ['created_at'], unique=False)
        batch_op.create_index('idx_usage_logs_caller_created', ['caller_id', 'created_at'], unique=False)


def downgrade():
    op.drop_table('usage_logs')
    op.drop_table('anonymous_usage')
    op.drop_table('accounts')
