"""Shared files, passcode challenges, invitations and access logs

Revision ID: 001_initial_schema
Revises: 
Create Date: 2025-06-01

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'shared_files',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('owner_id', sa.String(length=36), nullable=False),
        sa.Column('blob_key', sa.String(length=255), nullable=False),
        sa.Column('encrypted_file_name', sa.String(length=1024), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('file_salt', sa.LargeBinary(), nullable=False),
        sa.Column('file_iv', sa.LargeBinary(), nullable=True),
        sa.Column('master_key_hash', sa.String(length=255), nullable=True),
        sa.Column('metadata_iv', sa.LargeBinary(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('burn_after_read', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('download_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('burned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('blob_key'),
    )
    op.create_index('ix_shared_files_owner_id', 'shared_files', ['owner_id'])

    # tombstones for burned files
    op.create_table(
        'consumed_files',
        sa.Column('file_id', sa.String(length=36), nullable=False),
        sa.Column('owner_id', sa.String(length=36), nullable=False),
        sa.Column('consumed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('file_id'),
    )
    op.create_index('ix_consumed_files_owner_id', 'consumed_files', ['owner_id'])

    op.create_table(
        'otp_challenges',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('file_id', sa.String(length=36), nullable=False),
        sa.Column('recipient_phone', sa.String(length=20), nullable=False),
        sa.Column('recipient_id', sa.String(length=36), nullable=True),
        sa.Column('passcode_hash', sa.String(length=64), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('provider_message_id', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_otp_challenges_recipient_phone', 'otp_challenges', ['recipient_phone'])
    op.create_index(
        'ix_otp_challenges_file_phone_created', 'otp_challenges', ['file_id', 'recipient_phone', 'created_at']
    )

    op.create_table(
        'invitations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('file_id', sa.String(length=36), nullable=False),
        sa.Column('sender_id', sa.String(length=36), nullable=False),
        sa.Column('recipient_email', sa.String(length=255), nullable=False),
        sa.Column('invitation_token', sa.String(length=128), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'ACCEPTED', 'EXPIRED', name='invitationstatus'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_by_user_id', sa.String(length=36), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invitation_token'),
    )
    op.create_index('ix_invitations_file_id', 'invitations', ['file_id'])
    op.create_index('ix_invitations_recipient_email', 'invitations', ['recipient_email'])

    op.create_table(
        'file_access_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('file_id', sa.String(length=36), nullable=False),
        sa.Column('event', sa.Enum('METADATA_RELEASED', 'DOWNLOAD_RECORDED', name='accessevent'), nullable=False),
        sa.Column('recipient_phone', sa.String(length=20), nullable=True),
        sa.Column('verification_id', sa.String(length=36), nullable=True),
        sa.Column('download_count', sa.Integer(), nullable=True),
        sa.Column('at_utc', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_file_access_logs_file_id', 'file_access_logs', ['file_id'])


def downgrade():
    op.drop_index('ix_file_access_logs_file_id', 'file_access_logs')
    op.drop_table('file_access_logs')
    op.drop_index('ix_invitations_recipient_email', 'invitations')
    op.drop_index('ix_invitations_file_id', 'invitations')
    op.drop_table('invitations')
    op.drop_index('ix_otp_challenges_file_phone_created', 'otp_challenges')
    op.drop_index('ix_otp_challenges_recipient_phone', 'otp_challenges')
    op.drop_table('otp_challenges')
    op.drop_index('ix_consumed_files_owner_id', 'consumed_files')
    op.drop_table('consumed_files')
    op.drop_index('ix_shared_files_owner_id', 'shared_files')
    op.drop_table('shared_files')
