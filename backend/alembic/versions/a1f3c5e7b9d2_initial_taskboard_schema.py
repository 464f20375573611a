"""Initial taskboard schema

Revision ID: a1f3c5e7b9d2
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates 11 tables:
- users
- boards, board_members, board_lists
- cards, card_members, card_attachments, card_checklists
- comments, activities (append-only), notifications
"""
from alembic import op
import sqlalchemy as sa

revision = 'a1f3c5e7b9d2'
down_revision = None
branch_labels = None
depends_on = None

board_visibility = sa.Enum('PUBLIC', 'PRIVATE', name='boardvisibility')
member_role = sa.Enum('ADMIN', 'MEMBER', 'VIEWER', name='memberrole')
card_priority = sa.Enum('LOW', 'MEDIUM', 'HIGH', 'CRITICAL', name='cardpriority')
activity_type = sa.Enum(
    'BOARD_CREATED', 'BOARD_UPDATED', 'BOARD_DELETED',
    'CARD_CREATED', 'CARD_UPDATED', 'CARD_MOVED', 'CARD_DELETED',
    'COMMENT_ADDED', 'MEMBER_ADDED', 'MEMBER_REMOVED',
    'LIST_CREATED', 'LIST_UPDATED', 'LIST_DELETED',
    name='activitytype',
)
notification_type = sa.Enum(
    'CARD_ASSIGNED', 'CARD_MENTIONED', 'CARD_DUE', 'BOARD_INVITED', 'COMMENT_ADDED', 'CARD_MOVED',
    name='notificationtype',
)


def upgrade() -> None:
    # ---- users ----
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=False),
        sa.Column('avatar_url', sa.String(), nullable=True),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('preferences', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_is_active', 'users', ['is_active'])
    op.create_index('ix_users_created_at', 'users', ['created_at'])

    # ---- boards ----
    op.create_table(
        'boards',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('owner_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('visibility', board_visibility, nullable=False),
        sa.Column('background', sa.String(), nullable=False),
        sa.Column('labels', sa.JSON(), nullable=False),
        sa.Column('archived', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_boards_owner_id', 'boards', ['owner_id'])
    op.create_index('ix_boards_archived', 'boards', ['archived'])

    # ---- board_members ----
    op.create_table(
        'board_members',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('board_id', sa.String(), sa.ForeignKey('boards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('role', member_role, nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('board_id', 'user_id', name='uq_board_member'),
    )
    op.create_index('ix_board_members_board_id', 'board_members', ['board_id'])
    op.create_index('ix_board_members_user_id', 'board_members', ['user_id'])

    # ---- board_lists ----
    op.create_table(
        'board_lists',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('board_id', sa.String(), sa.ForeignKey('boards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('archived', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_board_lists_board_id', 'board_lists', ['board_id'])
    op.create_index('idx_list_board_pos', 'board_lists', ['board_id', 'position'])

    # ---- cards ----
    op.create_table(
        'cards',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('board_id', sa.String(), sa.ForeignKey('boards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('list_id', sa.String(), sa.ForeignKey('board_lists.id', ondelete='CASCADE'), nullable=False),
        sa.Column('creator_id', sa.String(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('labels', sa.JSON(), nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('priority', card_priority, nullable=False),
        sa.Column('cover', sa.String(), nullable=False),
        sa.Column('archived', sa.Boolean(), nullable=False),
        sa.Column('completed', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_cards_board_id', 'cards', ['board_id'])
    op.create_index('ix_cards_list_id', 'cards', ['list_id'])
    op.create_index('idx_card_list_pos', 'cards', ['list_id', 'position'])
    op.create_index('idx_card_board', 'cards', ['board_id', 'archived'])

    # ---- card_members ----
    op.create_table(
        'card_members',
        sa.Column('card_id', sa.String(), sa.ForeignKey('cards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.PrimaryKeyConstraint('card_id', 'user_id'),
    )

    # ---- card_attachments ----
    op.create_table(
        'card_attachments',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('card_id', sa.String(), sa.ForeignKey('cards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('uploader_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('url', sa.String(), nullable=False),
        sa.Column('mime_type', sa.String(), nullable=True),
        sa.Column('size', sa.BigInteger(), default=0),
        sa.Column('uploaded_at', sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_card_attachments_card_id', 'card_attachments', ['card_id'])

    # ---- card_checklists ----
    op.create_table(
        'card_checklists',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('card_id', sa.String(), sa.ForeignKey('cards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_card_checklists_card_id', 'card_checklists', ['card_id'])

    # ---- comments ----
    op.create_table(
        'comments',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('card_id', sa.String(), sa.ForeignKey('cards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('edited', sa.Boolean(), nullable=False),
        sa.Column('edited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_comments_card_id', 'comments', ['card_id'])

    # ---- activities ----
    op.create_table(
        'activities',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('type', activity_type, nullable=False),
        sa.Column('board_id', sa.String(), sa.ForeignKey('boards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('card_id', sa.String(), nullable=True),
        sa.Column('list_id', sa.String(), nullable=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('old_value', sa.JSON(), nullable=True),
        sa.Column('new_value', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_activities_board_id', 'activities', ['board_id'])
    op.create_index('ix_activities_card_id', 'activities', ['card_id'])
    op.create_index('idx_activity_board_time', 'activities', ['board_id', 'created_at'])

    # ---- notifications ----
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', notification_type, nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('card_id', sa.String(), nullable=True),
        sa.Column('board_id', sa.String(), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])
    op.create_index('idx_notif_user_read', 'notifications', ['user_id', 'read'])


def downgrade() -> None:
    for table in (
        'notifications', 'activities', 'comments', 'card_checklists', 'card_attachments',
        'card_members', 'cards', 'board_lists', 'board_members', 'boards', 'users',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (notification_type, activity_type, card_priority, member_role, board_visibility):
        enum.drop(bind, checkfirst=True)
