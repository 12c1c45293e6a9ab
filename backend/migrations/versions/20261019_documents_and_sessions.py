"""documents and session tokens

Revision ID: 5c1d2e3f4a5b
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the schema for the document store and server-side sessions:
- documents: schema-less records grouped by collection (stock, sales,
  zreports, item_types, users), versioned for compare-and-set writes
- session_tokens: hashed bearer tokens issued at login
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c1d2e3f4a5b'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # documents: every collection lives here
    # ============================================================================
    op.create_table(
        'documents',
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('collection', sa.String(length=64), nullable=False),
        sa.Column('doc_id', sa.String(length=64), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('seq'),
        sa.UniqueConstraint('collection', 'doc_id', name='uq_documents_collection_doc_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_documents_collection_seq', 'documents', ['collection', 'seq'])

    # ============================================================================
    # session_tokens: login sessions
    # ============================================================================
    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)


def downgrade():
    op.drop_index('ix_session_tokens_token_hash', table_name='session_tokens')
    op.drop_index('ix_session_tokens_user_id', table_name='session_tokens')
    op.drop_table('session_tokens')
    op.drop_index('ix_documents_collection_seq', table_name='documents')
    op.drop_table('documents')
