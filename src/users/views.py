import uuid

from fastapi import APIRouter, Depends, status

from ..core.identity import normalized_user_id
from ..todo.services import BoardService, MembershipService, TaskService
from .dto import CreateUserPayload, DeleteUserResponse, PartialUpdateUserPayload, UserResponse
from .services import UserService

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
def user_create(payload: CreateUserPayload, service: UserService = Depends(UserService)):
    return service.create_user(payload)


@router.get("/{user_id}", response_model=UserResponse)
def user_details(
    user_id: uuid.UUID = Depends(normalized_user_id),
    service: UserService = Depends(UserService),
):
    return service.get_user(user_id)


@router.patch("/{user_id}", response_model=UserResponse)
def user_partial_update(
    payload: PartialUpdateUserPayload,
    user_id: uuid.UUID = Depends(normalized_user_id),
    service: UserService = Depends(UserService),
):
    return service.partial_update_user(user_id, payload)


@router.delete("/{user_id}", response_model=DeleteUserResponse)
def user_delete(
    user_id: uuid.UUID = Depends(normalized_user_id),
    service: UserService = Depends(UserService),
    board_service: BoardService = Depends(BoardService),
    membership_service: MembershipService = Depends(MembershipService),
    task_service: TaskService = Depends(TaskService),
):
    return service.delete_user(user_id, board_service, membership_service, task_service)
