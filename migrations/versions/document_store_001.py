"""Document store table

Revision ID: document_store_001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'document_store_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'document',
        sa.Column('path', sa.String(length=1024), nullable=False),
        sa.Column('collection_path', sa.String(length=1024), nullable=False),
        sa.Column('doc_id', sa.String(length=255), nullable=False),
        sa.Column(
            'data',
            sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql'),
            nullable=False,
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('path'),
    )
    op.create_index('ix_document_collection_path', 'document', ['collection_path'])


def downgrade():
    op.drop_index('ix_document_collection_path', table_name='document')
    op.drop_table('document')
