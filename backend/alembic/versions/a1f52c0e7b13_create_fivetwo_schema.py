"""Create fivetwo schema (projects, users, cards, comments, references, audit, FTS)

Revision ID: a1f52c0e7b13
Revises:
Create Date: 2026-10-19T09:12:44.318201
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = 'a1f52c0e7b13'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CARD_STATUSES = "'backlog', 'in_progress', 'review', 'blocked', 'done', 'wont_do', 'invalid'"
CARD_TYPES = "'story', 'bug', 'task', 'epic', 'spike', 'chore'"
REFERENCE_TYPES = (
    "'blocks', 'blocked_by', 'relates_to', 'duplicates', 'duplicated_by', "
    "'parent_of', 'child_of', 'follows', 'precedes', 'clones', 'cloned_by'"
)


def upgrade() -> None:
    # --- projects ---
    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('repository_url', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('repository_url'),
    )

    # --- users ---
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
        sa.CheckConstraint("type IN ('human', 'ai')", name='ck_users_type'),
    )

    # --- cards ---
    op.create_table(
        'cards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id'), nullable=False),
        sa.Column('card_number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='backlog'),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('type', sa.String(), nullable=False, server_default='task'),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(f"status IN ({CARD_STATUSES})", name='ck_cards_status'),
        sa.CheckConstraint(f"type IN ({CARD_TYPES})", name='ck_cards_type'),
        sa.CheckConstraint("priority >= 0 AND priority <= 100", name='ck_cards_priority'),
        sa.CheckConstraint("version >= 1", name='ck_cards_version'),
    )
    op.create_index('ix_cards_project_id', 'cards', ['project_id'])
    op.create_index('idx_cards_project_card_number', 'cards', ['project_id', 'card_number'], unique=True)
    op.create_index('idx_cards_status', 'cards', ['status'])

    # --- comments ---
    op.create_table(
        'comments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('card_id', sa.Integer(), sa.ForeignKey('cards.id'), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='created'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("status IN ('created', 'deleted')", name='ck_comments_status'),
    )
    op.create_index('ix_comments_card_id', 'comments', ['card_id'])

    # --- card_references ---
    op.create_table(
        'card_references',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('source_card_id', sa.Integer(), sa.ForeignKey('cards.id'), nullable=False),
        sa.Column('target_card_id', sa.Integer(), sa.ForeignKey('cards.id'), nullable=False),
        sa.Column('reference_type', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_card_id', 'target_card_id', 'reference_type', name='uq_card_references_edge'),
        sa.CheckConstraint("source_card_id != target_card_id", name='ck_card_references_distinct'),
        sa.CheckConstraint(f"reference_type IN ({REFERENCE_TYPES})", name='ck_card_references_type'),
        sqlite_autoincrement=True,
    )
    op.create_index('idx_card_references_source', 'card_references', ['source_card_id'])
    op.create_index('idx_card_references_target', 'card_references', ['target_card_id'])

    # --- cards_audit ---
    op.create_table(
        'cards_audit',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('card_id', sa.Integer(), sa.ForeignKey('cards.id'), nullable=False),
        sa.Column('old_status', sa.String(), nullable=True),
        sa.Column('new_status', sa.String(), nullable=True),
        sa.Column('old_title', sa.String(), nullable=True),
        sa.Column('new_title', sa.String(), nullable=True),
        sa.Column('old_description', sa.Text(), nullable=True),
        sa.Column('new_description', sa.Text(), nullable=True),
        sa.Column('old_priority', sa.Integer(), nullable=True),
        sa.Column('new_priority', sa.Integer(), nullable=True),
        sa.Column('changed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_cards_audit_card_id', 'cards_audit', ['card_id'])

    # --- cards_fts (rowid = cards.id) ---
    op.execute("CREATE VIRTUAL TABLE IF NOT EXISTS cards_fts USING fts5(title, description)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS cards_fts")
    op.drop_index('ix_cards_audit_card_id', table_name='cards_audit')
    op.drop_table('cards_audit')
    op.drop_index('idx_card_references_target', table_name='card_references')
    op.drop_index('idx_card_references_source', table_name='card_references')
    op.drop_table('card_references')
    op.drop_index('ix_comments_card_id', table_name='comments')
    op.drop_table('comments')
    op.drop_index('idx_cards_status', table_name='cards')
    op.drop_index('idx_cards_project_card_number', table_name='cards')
    op.drop_index('ix_cards_project_id', table_name='cards')
    op.drop_table('cards')
    op.drop_table('users')
    op.drop_table('projects')
