# models.py — Database models for the Taskboard API
# - UUID string primary keys everywhere
# - Soft deletes (archived flag) for boards, lists and cards
# - Board owner is derived from boards.owner_id, never stored in board_members
# - Activity is append-only; comments and notifications are hard-deleted

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Boolean, BigInteger, Integer,
    Enum as SQLEnum, ForeignKey, Text, Index, Table, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class BoardVisibility(str, PyEnum):
    PUBLIC = "public"
    PRIVATE = "private"


class MemberRole(str, PyEnum):
    """Roles that can be stored on a membership row (owner is derived)"""
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class CardPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ActivityType(str, PyEnum):
    BOARD_CREATED = "board_created"
    BOARD_UPDATED = "board_updated"
    BOARD_DELETED = "board_deleted"
    CARD_CREATED = "card_created"
    CARD_UPDATED = "card_updated"
    CARD_MOVED = "card_moved"
    CARD_DELETED = "card_deleted"
    COMMENT_ADDED = "comment_added"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    LIST_CREATED = "list_created"
    LIST_UPDATED = "list_updated"
    LIST_DELETED = "list_deleted"


class NotificationType(str, PyEnum):
    CARD_ASSIGNED = "card_assigned"
    CARD_MENTIONED = "card_mentioned"
    CARD_DUE = "card_due"
    BOARD_INVITED = "board_invited"
    COMMENT_ADDED = "comment_added"
    CARD_MOVED = "card_moved"


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    display_name = Column(String, nullable=False, default="")
    avatar_url = Column(String, nullable=True)
    password_hash = Column(String, nullable=False)
    preferences = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    notifications = relationship("Notification", back_populates="user")


# ============================================================
# BOARDS
# ============================================================

class Board(Base):
    """Top-level container of lists, with owner, membership and visibility"""
    __tablename__ = "boards"

    id = Column(String, primary_key=True, default=new_uuid)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    visibility = Column(SQLEnum(BoardVisibility), nullable=False, default=BoardVisibility.PRIVATE)
    background = Column(String, nullable=False, default="#0079bf")
    labels = Column(JSON, nullable=False, default=list)  # [{id, name, color}]
    archived = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id])
    members = relationship(
        "BoardMember",
        back_populates="board",
        order_by="BoardMember.joined_at",
        cascade="all, delete-orphan",
    )


class BoardMember(Base):
    """Explicit membership of a user on a board"""
    __tablename__ = "board_members"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(SQLEnum(MemberRole), nullable=False, default=MemberRole.MEMBER)
    joined_at = Column(DateTime(timezone=True), default=utcnow)

    board = relationship("Board", back_populates="members")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("board_id", "user_id", name="uq_board_member"),
    )


class BoardList(Base):
    """Ordered column of cards within a board"""
    __tablename__ = "board_lists"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_list_board_pos", "board_id", "position"),
    )


# ============================================================
# CARDS
# ============================================================

card_members = Table(
    "card_members",
    Base.metadata,
    Column("card_id", String, ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String, ForeignKey("users.id"), primary_key=True),
)


class Card(Base):
    """Task unit; lives in exactly one list at a time"""
    __tablename__ = "cards"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    list_id = Column(String, ForeignKey("board_lists.id", ondelete="CASCADE"), nullable=False, index=True)
    creator_id = Column(String, ForeignKey("users.id"), nullable=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    position = Column(Integer, nullable=False, default=0)
    labels = Column(JSON, nullable=False, default=list)  # Board label ids
    due_date = Column(DateTime(timezone=True), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    priority = Column(SQLEnum(CardPriority), nullable=False, default=CardPriority.MEDIUM)
    cover = Column(String, nullable=False, default="")
    archived = Column(Boolean, nullable=False, default=False)
    completed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    members = relationship("User", secondary=card_members, order_by="User.display_name")
    attachments = relationship(
        "CardAttachment", back_populates="card",
        order_by="CardAttachment.uploaded_at", cascade="all, delete-orphan",
    )
    checklists = relationship(
        "CardChecklist", back_populates="card",
        order_by="CardChecklist.created_at", cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_card_list_pos", "list_id", "position"),
        Index("idx_card_board", "board_id", "archived"),
    )


class CardAttachment(Base):
    """File attachment on a card; the bytes live in the blob store"""
    __tablename__ = "card_attachments"

    id = Column(String, primary_key=True, default=new_uuid)
    card_id = Column(String, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)
    uploader_id = Column(String, ForeignKey("users.id"), nullable=False)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    mime_type = Column(String, nullable=True)
    size = Column(BigInteger, default=0)
    uploaded_at = Column(DateTime(timezone=True), default=utcnow)

    card = relationship("Card", back_populates="attachments")


class CardChecklist(Base):
    """Checklist with ordered items: [{id, text, completed, completed_by, completed_at}]"""
    __tablename__ = "card_checklists"

    id = Column(String, primary_key=True, default=new_uuid)
    card_id = Column(String, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    items = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    card = relationship("Card", back_populates="checklists")


# ============================================================
# COMMENTS
# ============================================================

class Comment(Base):
    __tablename__ = "comments"

    id = Column(String, primary_key=True, default=new_uuid)
    card_id = Column(String, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String, ForeignKey("users.id"), nullable=False)
    text = Column(Text, nullable=False)
    edited = Column(Boolean, nullable=False, default=False)
    edited_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    author = relationship("User")


# ============================================================
# ACTIVITY (append-only audit trail)
# ============================================================

class Activity(Base):
    __tablename__ = "activities"

    id = Column(String, primary_key=True, default=new_uuid)
    type = Column(SQLEnum(ActivityType), nullable=False)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    card_id = Column(String, nullable=True, index=True)
    list_id = Column(String, nullable=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    description = Column(Text, nullable=False)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User")

    __table_args__ = (
        Index("idx_activity_board_time", "board_id", "created_at"),
    )


# ============================================================
# NOTIFICATIONS
# ============================================================

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(SQLEnum(NotificationType), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    card_id = Column(String, nullable=True)
    board_id = Column(String, nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    # Relationships
    user = relationship("User", back_populates="notifications")

    __table_args__ = (
        Index("idx_notif_user_read", "user_id", "read"),
    )
