"""Expression indexes for top-level equality lookups

Revision ID: document_store_002
Revises: document_store_001
Create Date: 2026-10-19

"""
from alembic import op

# revision identifiers, used by Alembic.
revision = 'document_store_002'
down_revision = 'document_store_001'
branch_labels = None
depends_on = None

INDEXED_FIELDS = ('clubId', 'ownerUid', 'stripeCustomerId')


def _index_name(field):
    return 'ix_document_data_%s' % field.lower()


def upgrade():
    # SQLite scans the collection index; only PostgreSQL gets expression indexes
    if op.get_bind().dialect.name != 'postgresql':
        return
    for field in INDEXED_FIELDS:
        op.execute(
            "CREATE INDEX IF NOT EXISTS %s ON document (collection_path, (data->>'%s'))"
            % (_index_name(field), field)
        )


def downgrade():
    if op.get_bind().dialect.name != 'postgresql':
        return
    for field in INDEXED_FIELDS:
        op.execute('DROP INDEX IF EXISTS %s' % _index_name(field))
