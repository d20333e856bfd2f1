import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.session import Session as SessionType
from sqlalchemy.sql import case, delete, func, select, update

from ..core import BaseRepository, exceptions
from ..users.models import User
from .constants import MemberRole
from .models import Board, BoardMember, Task


class BoardRepository(BaseRepository):
    model = Board
    integrity_errors = {
        "boards_created_by_fkey": (
            "created_by",
            exceptions.InvalidReferenceError,
            "Invalid user ID - user does not exist",
        ),
    }

    def session_get_board_by_id(self, session: SessionType, board_id: uuid.UUID) -> Board:
        board = session.get(self.model, board_id)
        if not board:
            raise exceptions.NotFoundError("Board")
        return board

    def list_boards_for_user(self, user_id: uuid.UUID) -> list[Board]:
        with self.sessionmaker() as session:
            return list(
                session.scalars(
                    select(self.model)
                    .join(BoardMember, BoardMember.board_id == self.model.id)
                    .where(BoardMember.user_id == user_id)
                    .order_by(self.model.updated_at.desc())
                ).all()
            )

    def list_boards(self) -> list[Board]:
        with self.sessionmaker() as session:
            return list(
                session.scalars(select(self.model).order_by(self.model.updated_at.desc())).all()
            )

    def search_boards_by_name(self, name: str) -> list[Board]:
        escaped = name.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self.sessionmaker() as session:
            return list(
                session.scalars(
                    select(self.model)
                    .where(self.model.board_name.ilike(f"%{escaped}%", escape="\\"))
                    .order_by(self.model.board_name)
                ).all()
            )

    def partial_update_board(self, board_id: uuid.UUID, fields: dict) -> Board:
        with self.transaction() as session:
            board = self.session_get_board_by_id(session, board_id)
            for name, value in fields.items():
                setattr(board, name, value)
            board.updated_at = func.current_timestamp()
            return self.session_flush(session, board)

    def session_board_ids_created_by(
        self,
        session: SessionType,
        user_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        return list(
            session.scalars(select(self.model.id).where(self.model.created_by == user_id)).all()
        )

    # Counters. Only the membership and task coordinators call these, always inside the
    # transaction that inserts or deletes the counted row. Each returns the number of
    # board rows touched, 0 meaning the board does not exist.
    def session_increment_member_count(self, session: SessionType, board_id: uuid.UUID) -> int:
        return self.session_adjust_counter(session, board_id, self.model.member_count, 1)

    def session_decrement_member_count(self, session: SessionType, board_id: uuid.UUID) -> int:
        return self.session_adjust_counter(session, board_id, self.model.member_count, -1)

    def session_increment_task_count(self, session: SessionType, board_id: uuid.UUID) -> int:
        return self.session_adjust_counter(session, board_id, self.model.task_count, 1)

    def session_decrement_task_count(self, session: SessionType, board_id: uuid.UUID) -> int:
        return self.session_adjust_counter(session, board_id, self.model.task_count, -1)

    def session_adjust_counter(
        self,
        session: SessionType,
        board_id: uuid.UUID,
        counter,
        delta: int,
    ) -> int:
        if delta > 0:
            value = counter + delta
        else:
            # Floored at 0
            value = case((counter + delta > 0, counter + delta), else_=0)

        result = session.execute(
            update(self.model)
            .where(self.model.id == board_id)
            .values({counter: value, self.model.updated_at: func.current_timestamp()})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def session_delete_board(self, session: SessionType, board_id: uuid.UUID) -> None:
        session.execute(delete(Task).where(Task.board_id == board_id))
        session.execute(delete(BoardMember).where(BoardMember.board_id == board_id))
        session.execute(delete(self.model).where(self.model.id == board_id))


def get_board_repository() -> BoardRepository:
    return BoardRepository()


class BoardMemberRepository(BaseRepository):
    model = BoardMember

    def list_members_for_board(self, board_id: uuid.UUID) -> list[tuple[BoardMember, User]]:
        with self.sessionmaker() as session:
            return [
                (member, user)
                for member, user in session.execute(
                    select(self.model, User)
                    .join(User, User.id == self.model.user_id)
                    .where(self.model.board_id == board_id)
                    .order_by(self.model.joined_at.asc())
                ).all()
            ]

    def session_get_member(
        self,
        session: SessionType,
        board_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> BoardMember | None:
        return session.get(self.model, (board_id, user_id))

    def session_insert_member(
        self,
        session: SessionType,
        board_id: uuid.UUID,
        user_id: uuid.UUID,
        role: str,
    ) -> BoardMember:
        member = self.model(board_id=board_id, user_id=user_id, role=role)
        session.add(member)
        try:
            session.flush()
        except IntegrityError as e:
            # Lost a race against a concurrent insert of the same pair
            if "unique" in str(e.orig).lower() or "board_members_pkey" in str(e.orig):
                raise exceptions.AlreadyMemberError() from e
            raise self.translate_integrity_error(e) from e
        session.refresh(member)
        return member

    def session_delete_member(self, session: SessionType, member: BoardMember) -> None:
        result = session.execute(
            delete(self.model).where(
                self.model.board_id == member.board_id,
                self.model.user_id == member.user_id,
            )
        )
        # Zero rows: another transaction removed the membership after it was read
        if result.rowcount == 0:
            raise exceptions.NotFoundError("Membership")

    def session_has_admin(self, session: SessionType, board_id: uuid.UUID) -> bool:
        return session.scalar(
            select(
                select(self.model.user_id)
                .where(self.model.board_id == board_id, self.model.role == MemberRole.ADMIN)
                .exists()
            )
        )

    def session_list_remaining(self, session: SessionType, board_id: uuid.UUID) -> list[BoardMember]:
        return list(
            session.scalars(
                select(self.model)
                .where(self.model.board_id == board_id)
                .order_by(self.model.joined_at.asc())
            ).all()
        )

    def session_set_role(self, session: SessionType, member: BoardMember, role: str) -> BoardMember:
        member.role = role
        session.flush()
        return member

    def session_board_ids_for_user(
        self,
        session: SessionType,
        user_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        return list(
            session.scalars(select(self.model.board_id).where(self.model.user_id == user_id)).all()
        )


def get_board_member_repository() -> BoardMemberRepository:
    return BoardMemberRepository()


class TaskRepository(BaseRepository):
    model = Task
    integrity_errors = {
        "tasks_board_id_fkey": (
            "board_id",
            exceptions.InvalidReferenceError,
            "Invalid board ID - board does not exist",
        ),
        "tasks_created_by_fkey": (
            "created_by",
            exceptions.InvalidReferenceError,
            "Invalid created_by user ID - user does not exist",
        ),
        "tasks_assigned_to_fkey": (
            "assigned_to",
            exceptions.InvalidReferenceError,
            "Invalid assigned_to user ID - user does not exist",
        ),
    }

    def list_tasks_for_board(self, board_id: uuid.UUID) -> list[Task]:
        with self.sessionmaker() as session:
            return list(
                session.scalars(
                    select(self.model)
                    .where(self.model.board_id == board_id)
                    .order_by(self.model.position.asc(), self.model.created_at.desc())
                ).all()
            )

    def list_tasks_for_assignee(self, user_id: uuid.UUID) -> list[Task]:
        with self.sessionmaker() as session:
            return list(
                session.scalars(
                    select(self.model)
                    .where(self.model.assigned_to == user_id)
                    .order_by(self.model.due_date.asc().nulls_last(), self.model.created_at.desc())
                ).all()
            )

    def session_get_task_by_id(self, session: SessionType, task_id: uuid.UUID) -> Task:
        task = session.get(self.model, task_id)
        if not task:
            raise exceptions.NotFoundError("Task")
        return task

    def session_next_position(self, session: SessionType, board_id: uuid.UUID) -> int:
        return session.scalar(
            select(func.coalesce(func.max(self.model.position), -1) + 1).where(
                self.model.board_id == board_id
            )
        )

    def session_update_task(self, session: SessionType, task: Task, fields: dict) -> Task:
        for name, value in fields.items():
            setattr(task, name, value)
        task.updated_at = func.current_timestamp()
        return self.session_flush(session, task)

    def session_delete_task(self, session: SessionType, task: Task) -> None:
        result = session.execute(delete(self.model).where(self.model.id == task.id))
        if result.rowcount == 0:
            raise exceptions.NotFoundError("Task")

    def session_clear_user_references(self, session: SessionType, user_id: uuid.UUID) -> None:
        session.execute(
            update(self.model)
            .where(self.model.created_by == user_id)
            .values(created_by=None)
            .execution_options(synchronize_session=False)
        )
        session.execute(
            update(self.model)
            .where(self.model.assigned_to == user_id)
            .values(assigned_to=None)
            .execution_options(synchronize_session=False)
        )


def get_task_repository() -> TaskRepository:
    return TaskRepository()
