"""create users and usage_limits tables

Revision ID: 3f1c9a2b7d10
Revises:
Create Date: 2026-09-28 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1c9a2b7d10'
down_revision = None
branch_labels = None
depends_on = None


user_role = sa.Enum('student', 'teacher', 'admin', 'service', name='user_role')


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', user_role, nullable=False, server_default='student'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)

    op.create_table(
        'usage_limits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('service_name', sa.String(length=50), nullable=False),
        sa.Column('usage_date', sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'service_name', 'usage_date', name='uq_usage_limits_user_service_date')
    )
    with op.batch_alter_table('usage_limits', schema=None) as batch_op:
        batch_op.create_index('ix_usage_limits_user_date', ['user_id', 'usage_date'], unique=False)


def downgrade():
    with op.batch_alter_table('usage_limits', schema=None) as batch_op:
        batch_op.drop_index('ix_usage_limits_user_date')

    op.drop_table('usage_limits')

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_users_email'))

    op.drop_table('users')
    user_role.drop(op.get_bind(), checkfirst=True)
