from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "202610181200_a1f3c9d2"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'files',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('uploader_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('size', sa.BigInteger(), nullable=False),
        sa.Column('mime_type', sa.String(), nullable=False),
        sa.Column('extension', sa.String(), nullable=False),
        sa.Column('checksum', sa.String(length=64), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('size > 0', name='ck_files_size_positive'),
        sa.CheckConstraint(
            '(is_deleted AND deleted_at IS NOT NULL) OR (NOT is_deleted AND deleted_at IS NULL)',
            name='ck_files_deleted_at_matches_flag',
        ),
    )
    op.create_index('ix_files_uploader_id', 'files', ['uploader_id'])
    op.create_index('ix_files_checksum', 'files', ['checksum'])
    op.create_index('ix_files_is_deleted', 'files', ['is_deleted'])

    op.create_table(
        'storage',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('file_id', sa.String(length=36), sa.ForeignKey('files.id', ondelete='CASCADE'), nullable=False),
        sa.Column('storage_provider', sa.String(), nullable=False),
        sa.Column('bucket', sa.String(), nullable=True),
        sa.Column('storage_key', sa.String(), nullable=False),
        sa.Column('cdn_url', sa.String(), nullable=True),
        sa.UniqueConstraint('storage_provider', 'bucket', 'storage_key', name='uq_storage_provider_bucket_key'),
    )
    op.create_index('ix_storage_file_id', 'storage', ['file_id'], unique=True)

def downgrade() -> None:
    op.drop_index('ix_storage_file_id', table_name='storage')
    op.drop_table('storage')
    op.drop_index('ix_files_is_deleted', table_name='files')
    op.drop_index('ix_files_checksum', table_name='files')
    op.drop_index('ix_files_uploader_id', table_name='files')
    op.drop_table('files')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
