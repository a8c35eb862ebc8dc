"""create bookmark table

Revision ID: 0001_bookmarks
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_bookmarks'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'bookmark',
        sa.Column('id', sa.String(), primary_key=True, nullable=False),
        sa.Column('owner_user_id', sa.String(), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_bookmark_owner_user_id', 'bookmark', ['owner_user_id'])
    op.create_index('ix_bookmark_created_at', 'bookmark', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_bookmark_created_at', table_name='bookmark')
    op.drop_index('ix_bookmark_owner_user_id', table_name='bookmark')
    op.drop_table('bookmark')
