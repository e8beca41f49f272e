"""create auth tables

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates the authentication schema:
- users: principal record, lockout counters, activity and logout watermark
- revoked_tokens: individually revoked session tokens (SHA256)
- one_time_tokens: recovery tokens and OAuth exchange codes (SHA256)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create users, revoked_tokens and one_time_tokens"""

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('photo_url', sa.String(500), nullable=True),
        sa.Column('hashed_password', sa.String(255), nullable=True),
        sa.Column('security_question', sa.String(255), nullable=True),
        sa.Column('security_answer_hash', sa.String(255), nullable=True),
        sa.Column('google_id', sa.String(255), unique=True, nullable=True, index=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='client'),
        sa.Column('is_confirmed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('accepts_privacy_notice', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('accepts_promotions', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('otp_code_hash', sa.String(64), nullable=True),
        sa.Column('otp_expires_at', sa.DateTime(), nullable=True),
        sa.Column('failed_login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('locked_until', sa.DateTime(), nullable=True),
        sa.Column('last_failed_login_at', sa.DateTime(), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(), nullable=True),
        sa.Column('tokens_valid_after', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('deactivated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'revoked_tokens',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('token_hash', sa.String(64), unique=True, nullable=False, index=True),
        sa.Column('user_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False, index=True),
        sa.Column('revoked_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE')
    )

    op.create_table(
        'one_time_tokens',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('token_hash', sa.String(64), unique=True, nullable=False, index=True),
        sa.Column('purpose', sa.String(32), nullable=False, index=True),
        sa.Column('email', sa.String(255), nullable=False, index=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False, index=True),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('request_ip', sa.String(45), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE')
    )

    # Index for cleanup queries
    op.create_index(
        'ix_one_time_tokens_user_purpose',
        'one_time_tokens',
        ['user_id', 'purpose', 'used']
    )


def downgrade() -> None:
    """Drop auth tables"""
    op.drop_index('ix_one_time_tokens_user_purpose', table_name='one_time_tokens')
    op.drop_table('one_time_tokens')
    op.drop_table('revoked_tokens')
    op.drop_table('users')
