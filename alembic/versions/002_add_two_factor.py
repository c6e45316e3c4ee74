"""add two-factor columns and two_factor_sessions table

Revision ID: 002_add_two_factor
Revises: 001_create_users
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_add_two_factor'
down_revision = '001_create_users'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column('users', sa.Column('two_factor_enabled', sa.Boolean(), nullable=False, server_default=sa.false()))
    op.add_column('users', sa.Column('two_factor_secret', sa.String(64), nullable=True))
    op.add_column('users', sa.Column('backup_codes', sa.JSON(), nullable=True))
    op.add_column('users', sa.Column('backup_codes_version', sa.Integer(), nullable=False, server_default='0'))

    op.create_table(
        'two_factor_sessions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('expires_at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.Column('verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_two_factor_sessions_user_id', 'two_factor_sessions', ['user_id'])
    op.create_index('ix_two_factor_sessions_token_hash', 'two_factor_sessions', ['token_hash'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_two_factor_sessions_token_hash', table_name='two_factor_sessions')
    op.drop_index('ix_two_factor_sessions_user_id', table_name='two_factor_sessions')
    op.drop_table('two_factor_sessions')

    op.drop_column('users', 'backup_codes_version')
    op.drop_column('users', 'backup_codes')
    op.drop_column('users', 'two_factor_secret')
    op.drop_column('users', 'two_factor_enabled')
