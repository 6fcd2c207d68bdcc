"""Per-phone lock rows for the SMS rate limiter

Revision ID: 002_sms_rate_limits
Revises: 001_initial_schema
Create Date: 2025-06-08

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_sms_rate_limits'
down_revision = '001_initial_schema'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'sms_rate_limits',
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('last_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('send_count', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('phone'),
    )


def downgrade():
    op.drop_table('sms_rate_limits')
