import uuid

from fastapi import Depends
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.session import Session as SessionType

from ..core import exceptions, settings
from ..users.models import User
from ..users.repositories import UserRepository, get_user_repository
from .constants import MemberRole
from .dto import (
    AddBoardMemberPayload,
    AddBoardMemberResponse,
    BoardMemberDetailsResponse,
    BoardMemberResponse,
    BoardResponse,
    BoardResponseFlat,
    CreateBoardPayload,
    CreateTaskPayload,
    DeleteBoardResponse,
    DeleteTaskResponse,
    PartialUpdateBoardPayload,
    PartialUpdateTaskPayload,
    PromotedMemberResponse,
    RemoveBoardMemberResponse,
    TaskResponse,
    TaskResponseFlat,
)
from .models import Board, BoardMember, Task
from .repositories import (
    BoardMemberRepository,
    BoardRepository,
    TaskRepository,
    get_board_member_repository,
    get_board_repository,
    get_task_repository,
)


class MembershipService:
    """Adds and removes board members while keeping member_count and the admin invariant.

    Every operation runs in a single transaction: the membership row, the board counter
    and any role promotion either all change or none of them do.
    """

    def __init__(
        self,
        repository: BoardMemberRepository = Depends(get_board_member_repository),
        board_repository: BoardRepository = Depends(get_board_repository),
        user_repository: UserRepository = Depends(get_user_repository),
    ) -> None:
        self.repository = repository
        self.board_repository = board_repository
        self.user_repository = user_repository
        self.allow_empty_boards = settings.ALLOW_EMPTY_BOARDS

    def add_member(
        self,
        board_id: uuid.UUID,
        payload: AddBoardMemberPayload,
    ) -> AddBoardMemberResponse:
        try:
            with self.repository.transaction() as session:
                self.board_repository.session_get_board_by_id(session, board_id)
                user = self.session_resolve_user(session, payload)
                member = self.session_add_member(session, board_id, user.id, payload.role)
                response = self.create_member_response(member)
        except SQLAlchemyError:
            logger.exception("add_member failed for board {}", board_id)
            raise

        logger.info("Member {} added to board {} as {}", response.user_id, board_id, response.role)
        return AddBoardMemberResponse(message="Member added", member=response)

    def session_resolve_user(self, session: SessionType, payload: AddBoardMemberPayload) -> User:
        if payload.user_id is not None:
            user = self.user_repository.session_get_by_id(session, payload.user_id)
        else:
            user = self.user_repository.session_get_by_email(session, payload.email)
        if not user:
            raise exceptions.NotFoundError("User")
        return user

    def session_add_member(
        self,
        session: SessionType,
        board_id: uuid.UUID,
        user_id: uuid.UUID,
        role: MemberRole,
    ) -> BoardMember:
        if self.repository.session_get_member(session, board_id, user_id):
            raise exceptions.AlreadyMemberError()

        # A board emptied by removals gets its next member as admin
        if not self.repository.session_has_admin(session, board_id):
            role = MemberRole.ADMIN

        member = self.repository.session_insert_member(session, board_id, user_id, str(role))
        if not self.board_repository.session_increment_member_count(session, board_id):
            raise exceptions.NotFoundError("Board")
        return member

    def remove_member(self, board_id: uuid.UUID, user_id: uuid.UUID) -> RemoveBoardMemberResponse:
        try:
            with self.repository.transaction() as session:
                response = self.session_remove_member(session, board_id, user_id)
        except SQLAlchemyError:
            logger.exception("remove_member failed for board {} user {}", board_id, user_id)
            raise

        logger.info("Member {} removed from board {}", user_id, board_id)
        if response.promoted:
            logger.info("Member {} promoted to admin on board {}", response.promoted.user_id, board_id)
        return response

    def session_remove_member(
        self,
        session: SessionType,
        board_id: uuid.UUID,
        user_id: uuid.UUID,
        enforce_policy: bool = True,
    ) -> RemoveBoardMemberResponse:
        member = self.repository.session_get_member(session, board_id, user_id)
        if not member:
            raise exceptions.NotFoundError("Membership")

        if enforce_policy and not self.allow_empty_boards:
            if len(self.repository.session_list_remaining(session, board_id)) <= 1:
                raise exceptions.LastMemberError()

        removed = self.create_member_response(member)
        self.repository.session_delete_member(session, member)
        self.board_repository.session_decrement_member_count(session, board_id)

        promoted = None
        remaining = self.repository.session_list_remaining(session, board_id)
        if remaining and not any(m.role == MemberRole.ADMIN for m in remaining):
            # Earliest-joined survivor takes over
            survivor = self.repository.session_set_role(session, remaining[0], MemberRole.ADMIN)
            promoted = PromotedMemberResponse(user_id=survivor.user_id, role=MemberRole.ADMIN)

        return RemoveBoardMemberResponse(message="Member removed", removed=removed, promoted=promoted)

    def list_members(self, board_id: uuid.UUID) -> list[BoardMemberDetailsResponse]:
        return [
            self.create_member_details_response(member, user)
            for member, user in self.repository.list_members_for_board(board_id)
        ]

    # Serialization
    def create_member_response(self, member: BoardMember) -> BoardMemberResponse:
        return BoardMemberResponse(
            board_id=member.board_id,
            user_id=member.user_id,
            role=member.role,
            joined_at=member.joined_at,
        )

    def create_member_details_response(
        self,
        member: BoardMember,
        user: User,
    ) -> BoardMemberDetailsResponse:
        return BoardMemberDetailsResponse(
            user_id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            avatar_url=user.avatar_url,
            role=member.role,
            joined_at=member.joined_at,
        )


class BoardService:
    def __init__(self, repository: BoardRepository = Depends(get_board_repository)) -> None:
        self.repository = repository

    def create_board(
        self,
        payload: CreateBoardPayload,
        membership_service: MembershipService,
    ) -> BoardResponse:
        try:
            with self.repository.transaction() as session:
                if not membership_service.user_repository.session_exists_with_id(
                    session, payload.created_by
                ):
                    raise exceptions.InvalidReferenceError(
                        "created_by", "Invalid user ID - user does not exist"
                    )

                board = self.repository.session_add(
                    session, self.create_domain_board_instance(payload)
                )
                # The creator is the board's first admin
                membership_service.session_add_member(
                    session, board.id, payload.created_by, MemberRole.ADMIN
                )
                session.refresh(board)
                response = self.create_board_response(board)
        except SQLAlchemyError:
            logger.exception("create_board failed for user {}", payload.created_by)
            raise

        logger.info("New board created: {}", response.board_id)
        return response

    def list_boards_for_user(self, user_id: uuid.UUID) -> list[BoardResponse]:
        return [
            self.create_board_response(board)
            for board in self.repository.list_boards_for_user(user_id)
        ]

    def list_boards(self) -> list[BoardResponse]:
        return [self.create_board_response(board) for board in self.repository.list_boards()]

    def search_boards(self, name: str) -> list[BoardResponse]:
        if not name.strip():
            raise exceptions.ValidationError("Search term is required")
        return [
            self.create_board_response(board)
            for board in self.repository.search_boards_by_name(name.strip())
        ]

    def partial_update_board(
        self,
        board_id: uuid.UUID,
        payload: PartialUpdateBoardPayload,
    ) -> BoardResponse:
        fields = payload.model_dump(exclude_unset=True)
        try:
            board = self.repository.partial_update_board(board_id, fields)
        except SQLAlchemyError:
            logger.exception("partial_update_board failed for board {}", board_id)
            raise

        logger.info("Board {} updated fields {}", board_id, sorted(fields))
        return self.create_board_response(board)

    def delete_board(self, board_id: uuid.UUID) -> DeleteBoardResponse:
        try:
            with self.repository.transaction() as session:
                board = self.repository.session_get_board_by_id(session, board_id)
                deleted_board = self.create_board_response_flat(board)
                self.repository.session_delete_board(session, board_id)
        except SQLAlchemyError:
            logger.exception("delete_board failed for board {}", board_id)
            raise

        logger.info("Board deleted: {}", board_id)
        return DeleteBoardResponse(message="Board deleted successfully", deleted_board=deleted_board)

    # Domain object manipulation
    def create_domain_board_instance(self, payload: CreateBoardPayload) -> Board:
        return Board(
            board_name=payload.board_name,
            description=payload.description,
            created_by=payload.created_by,
            member_count=0,
            task_count=0,
        )

    # Serialization
    def create_board_response(self, board: Board) -> BoardResponse:
        return BoardResponse(
            board_id=board.id,
            board_name=board.board_name,
            description=board.description,
            created_by=board.created_by,
            member_count=board.member_count,
            task_count=board.task_count,
            created_at=board.created_at,
            updated_at=board.updated_at,
        )

    def create_board_response_flat(self, board: Board) -> BoardResponseFlat:
        return BoardResponseFlat(board_id=board.id, board_name=board.board_name)


class TaskService:
    """Creates and deletes tasks while keeping the owning board's task_count in step.

    The board is checked inside the same transaction as the insert, so a task against a
    missing board is never written. A counter update that touches no board row (the
    board vanished mid-transaction) aborts the transaction, taking the insert with it.
    """

    def __init__(
        self,
        repository: TaskRepository = Depends(get_task_repository),
        board_repository: BoardRepository = Depends(get_board_repository),
        user_repository: UserRepository = Depends(get_user_repository),
    ) -> None:
        self.repository = repository
        self.board_repository = board_repository
        self.user_repository = user_repository

    def create_task(self, payload: CreateTaskPayload) -> TaskResponse:
        try:
            with self.repository.transaction() as session:
                if not self.board_repository.session_exists_with_id(session, payload.board_id):
                    raise exceptions.BoardNotFoundError()
                self.session_validate_user_reference(session, "created_by", payload.created_by)
                self.session_validate_user_reference(session, "assigned_to", payload.assigned_to)

                position = self.repository.session_next_position(session, payload.board_id)
                task = self.repository.session_add(
                    session, self.create_domain_task_instance(payload, position)
                )
                if not self.board_repository.session_increment_task_count(
                    session, payload.board_id
                ):
                    raise exceptions.BoardNotFoundError(
                        "Board not found; task creation rolled back"
                    )
                response = self.create_task_response(task)
        except SQLAlchemyError:
            logger.exception("create_task failed for board {}", payload.board_id)
            raise

        logger.info("New task created: {}", response.task_id)
        return response

    def list_tasks_for_board(self, board_id: uuid.UUID) -> list[TaskResponse]:
        return [
            self.create_task_response(task)
            for task in self.repository.list_tasks_for_board(board_id)
        ]

    def list_tasks_for_user(self, user_id: uuid.UUID) -> list[TaskResponse]:
        return [
            self.create_task_response(task)
            for task in self.repository.list_tasks_for_assignee(user_id)
        ]

    def partial_update_task(
        self,
        task_id: uuid.UUID,
        payload: PartialUpdateTaskPayload,
    ) -> TaskResponse:
        fields = payload.model_dump(exclude_unset=True)
        if "status" in fields:
            fields["status"] = str(fields["status"])

        try:
            with self.repository.transaction() as session:
                task = self.repository.session_get_task_by_id(session, task_id)
                if "assigned_to" in fields:
                    self.session_validate_user_reference(
                        session, "assigned_to", fields["assigned_to"]
                    )
                task = self.repository.session_update_task(session, task, fields)
                response = self.create_task_response(task)
        except SQLAlchemyError:
            logger.exception("partial_update_task failed for task {}", task_id)
            raise

        logger.info("Task {} updated fields {}", task_id, sorted(fields))
        return response

    def delete_task(self, task_id: uuid.UUID) -> DeleteTaskResponse:
        try:
            with self.repository.transaction() as session:
                task = self.repository.session_get_task_by_id(session, task_id)
                deleted_task = self.create_task_response_flat(task)
                board_id = task.board_id
                self.repository.session_delete_task(session, task)
                self.board_repository.session_decrement_task_count(session, board_id)
        except SQLAlchemyError:
            logger.exception("delete_task failed for task {}", task_id)
            raise

        logger.info("Task deleted: {}", task_id)
        return DeleteTaskResponse(message="Task deleted successfully", deleted_task=deleted_task)

    # Validation
    def session_validate_user_reference(
        self,
        session: SessionType,
        field: str,
        user_id: uuid.UUID | None,
    ) -> None:
        if user_id is None:
            return
        if not self.user_repository.session_exists_with_id(session, user_id):
            raise exceptions.InvalidReferenceError(
                field, f"Invalid {field} user ID - user does not exist"
            )

    # Domain object manipulation
    def create_domain_task_instance(self, payload: CreateTaskPayload, position: int) -> Task:
        return Task(
            title=payload.title,
            board_id=payload.board_id,
            created_by=payload.created_by,
            description=payload.description,
            assigned_to=payload.assigned_to,
            due_date=payload.due_date,
            tags=payload.tags,
            status=str(payload.status),
            position=position,
        )

    # Serialization
    def create_task_response(self, task: Task) -> TaskResponse:
        return TaskResponse(
            task_id=task.id,
            board_id=task.board_id,
            title=task.title,
            description=task.description,
            created_by=task.created_by,
            assigned_to=task.assigned_to,
            due_date=task.due_date,
            tags=task.tags,
            status=task.status,
            position=task.position,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )

    def create_task_response_flat(self, task: Task) -> TaskResponseFlat:
        return TaskResponseFlat(task_id=task.id, board_id=task.board_id, title=task.title)
