"""accounts: bonus_used_today (bonus draw-down per day)

Revision ID: 8c3f61d2e4b7
Revises: 5b1e2c7d9a40
Create Date: 2026-10-21 10:02:17.540311
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8c3f61d2e4b7'
down_revision = '5b1e2c7d9a40'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('accounts', schema=None) as batch_op:
        batch_op.add_column(sa.Column('bonus_used_today', sa.Integer(), nullable=False, server_default='0'))
        batch_op.create_check_constraint('ck_accounts_bonus_used_today_nonneg', 'bonus_used_today >= 0')


def downgrade():
    with op.batch_alter_table('accounts', schema=None) as batch_op:
        batch_op.drop_constraint('ck_accounts_bonus_used_today_nonneg', type_='check')
        batch_op.drop_column('bonus_used_today')
