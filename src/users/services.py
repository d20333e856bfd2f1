import uuid
from typing import TYPE_CHECKING

from fastapi import Depends
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from ..core import exceptions
from ..core.logger import sanitize_dict
from .dto import (
    CreateUserPayload,
    DeleteUserResponse,
    PartialUpdateUserPayload,
    UserResponse,
    UserResponseFlat,
)
from .models import User
from .repositories import UserRepository, get_user_repository

if TYPE_CHECKING:
    from ..todo.services import BoardService, MembershipService, TaskService


class UserService:
    def __init__(self, repository: UserRepository = Depends(get_user_repository)) -> None:
        self.repository = repository

    def create_user(self, payload: CreateUserPayload) -> UserResponse:
        logger.debug("Creating user {}", sanitize_dict(payload.model_dump(mode="json")))
        self.validate_unique_user_fields(payload)
        user = self.repository.create(self.create_domain_user_instance(payload))
        logger.info("New user created: {}", user.id)
        return self.create_user_response(user)

    def get_user(self, user_id: uuid.UUID) -> UserResponse:
        user = self.repository.get_by_id(user_id)
        if not user:
            raise exceptions.NotFoundError("User")
        return self.create_user_response(user)

    def partial_update_user(
        self,
        user_id: uuid.UUID,
        payload: PartialUpdateUserPayload,
    ) -> UserResponse:
        fields = payload.model_dump(exclude_unset=True)
        if "username" in fields and not self.repository.check_username_unique(
            fields["username"], exclude_id=user_id
        ):
            raise exceptions.ConflictError(["username"])

        try:
            user = self.repository.partial_update_user(user_id, fields)
        except SQLAlchemyError:
            logger.exception("partial_update_user failed for user {}", user_id)
            raise

        logger.info("User {} updated fields {}", user_id, sorted(fields))
        return self.create_user_response(user)

    def delete_user(
        self,
        user_id: uuid.UUID,
        board_service: "BoardService",
        membership_service: "MembershipService",
        task_service: "TaskService",
    ) -> DeleteUserResponse:
        """Delete an account and everything that hangs off it, in one transaction.

        Boards the user created go away with their tasks and memberships. On every other
        board the membership is removed the same way a member removal does it (counter
        decrement, last-member promotion). Tasks elsewhere keep existing with the user
        references cleared.
        """
        try:
            with self.repository.transaction() as session:
                user = self.repository.session_get_user_by_id(session, user_id)
                deleted_user = self.create_user_response_flat(user)

                for board_id in board_service.repository.session_board_ids_created_by(
                    session, user_id
                ):
                    board_service.repository.session_delete_board(session, board_id)

                for board_id in membership_service.repository.session_board_ids_for_user(
                    session, user_id
                ):
                    membership_service.session_remove_member(
                        session, board_id, user_id, enforce_policy=False
                    )

                task_service.repository.session_clear_user_references(session, user_id)
                self.repository.session_delete(session, user_id)
        except SQLAlchemyError:
            logger.exception("delete_user failed for user {}", user_id)
            raise

        logger.info("User deleted: {}", user_id)
        return DeleteUserResponse(message="User successfully deleted", deleted_user=deleted_user)

    # Validation
    def validate_unique_user_fields(self, payload: CreateUserPayload) -> None:
        duplicate_fields = []

        if not self.repository.check_username_unique(payload.username):
            duplicate_fields.append("username")
        if not self.repository.check_email_unique(payload.email):
            duplicate_fields.append("email")

        if duplicate_fields:
            raise exceptions.ConflictError(duplicate_fields)

    # Domain object manipulation
    def create_domain_user_instance(self, payload: CreateUserPayload) -> User:
        user = User(
            username=payload.username,
            email=payload.email,
            password_hash=payload.password_hash,
            full_name=payload.full_name,
        )
        if payload.user_id is not None:
            user.id = payload.user_id
        return user

    # Serialization
    def create_user_response(self, user: User) -> UserResponse:
        return UserResponse(
            user_id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            avatar_url=user.avatar_url,
            created_at=user.created_at,
            last_login=user.last_login,
            is_active=user.is_active,
        )

    def create_user_response_flat(self, user: User) -> UserResponseFlat:
        return UserResponseFlat(user_id=user.id, username=user.username, email=user.email)
