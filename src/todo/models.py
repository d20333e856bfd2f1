import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from ..core.db import Base, CommonFieldsMixin
from .constants import MemberRole, TaskStatus


class Board(Base, CommonFieldsMixin):
    __tablename__ = "boards"

    id: Mapped[uuid.UUID] = mapped_column("board_id", primary_key=True, default=uuid.uuid4)
    board_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Denormalized counters, only ever written by the membership and task coordinators
    member_count: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    task_count: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")

    created_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.user_id", name="boards_created_by_fkey", ondelete="CASCADE"),
        nullable=False,
    )


class BoardMember(Base):
    __tablename__ = "board_members"
    __table_args__ = (Index("ix_board_members_user_id", "user_id"),)

    board_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("boards.board_id", name="board_members_board_id_fkey", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.user_id", name="board_members_user_id_fkey", ondelete="CASCADE"),
        primary_key=True,
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=MemberRole.MEMBER.value,
        server_default=MemberRole.MEMBER.value,
    )
    joined_at: Mapped[datetime] = mapped_column(server_default=func.current_timestamp())


class Task(Base, CommonFieldsMixin):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_board_id_position", "board_id", "position"),
        Index("ix_tasks_assigned_to", "assigned_to"),
    )

    id: Mapped[uuid.UUID] = mapped_column("task_id", primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    tags: Mapped[Optional[list[str]]] = mapped_column(
        JSON().with_variant(ARRAY(String), "postgresql"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TaskStatus.TODO.value,
        server_default=TaskStatus.TODO.value,
    )
    position: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")

    board_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("boards.board_id", name="tasks_board_id_fkey", ondelete="CASCADE"),
        nullable=False,
    )
    # Nullable so a deleted account leaves the tasks it touched on other boards in place
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.user_id", name="tasks_created_by_fkey", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_to: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.user_id", name="tasks_assigned_to_fkey", ondelete="SET NULL"),
        nullable=True,
    )
