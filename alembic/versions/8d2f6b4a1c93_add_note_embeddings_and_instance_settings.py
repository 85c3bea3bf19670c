"""add_note_embeddings_and_instance_settings

Revision ID: 8d2f6b4a1c93
Revises: 3a7c1e9b2d40
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector


# revision identifiers, used by Alembic.
revision: str = '8d2f6b4a1c93'
down_revision: Union[str, Sequence[str], None] = '3a7c1e9b2d40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema: Enable pgvector, create note_embeddings and instance_settings."""
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # No fixed dimension: rows from different embedding models may coexist
    op.create_table(
        'note_embeddings',
        sa.Column('note_id', sa.Integer(), nullable=False),
        sa.Column('model', sa.String(length=200), nullable=False),
        sa.Column('dimension', sa.Integer(), nullable=False),
        sa.Column('vector', Vector(), nullable=False),
        sa.Column('content_hash', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['note_id'], ['notes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('note_id')
    )
    op.create_index(op.f('ix_note_embeddings_updated_at'), 'note_embeddings', ['updated_at'], unique=False)

    op.create_table(
        'instance_settings',
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('name')
    )


def downgrade() -> None:
    """Downgrade schema: Drop instance_settings and note_embeddings."""
    op.drop_table('instance_settings')
    op.drop_index(op.f('ix_note_embeddings_updated_at'), table_name='note_embeddings')
    op.drop_table('note_embeddings')
