import uuid

from fastapi import APIRouter, Depends, Query, status

from ..core.identity import normalized_user_id
from .dto import (
    AddBoardMemberPayload,
    AddBoardMemberResponse,
    BoardMemberDetailsResponse,
    BoardResponse,
    CreateBoardPayload,
    CreateTaskPayload,
    DeleteBoardResponse,
    DeleteTaskResponse,
    PartialUpdateBoardPayload,
    PartialUpdateTaskPayload,
    RemoveBoardMemberResponse,
    TaskResponse,
)
from .services import BoardService, MembershipService, TaskService

router = APIRouter(prefix="/api")


# Boards
@router.get("/boards", tags=["boards"], response_model=list[BoardResponse])
def board_list(service: BoardService = Depends(BoardService)):
    return service.list_boards()


# Declared before /boards/{user_id} so "search" is not read as a user id
@router.get("/boards/search", tags=["boards"], response_model=list[BoardResponse])
def board_search(
    name: str = Query(default=""),
    service: BoardService = Depends(BoardService),
):
    return service.search_boards(name)


@router.get("/boards/{user_id}", tags=["boards"], response_model=list[BoardResponse])
def boards_for_user_list(
    user_id: uuid.UUID = Depends(normalized_user_id),
    service: BoardService = Depends(BoardService),
):
    return service.list_boards_for_user(user_id)


@router.post(
    "/boards",
    tags=["boards"],
    status_code=status.HTTP_201_CREATED,
    response_model=BoardResponse,
)
def board_create(
    payload: CreateBoardPayload,
    service: BoardService = Depends(BoardService),
    membership_service: MembershipService = Depends(MembershipService),
):
    return service.create_board(payload, membership_service)


@router.patch("/boards/{board_id}", tags=["boards"], response_model=BoardResponse)
def board_partial_update(
    payload: PartialUpdateBoardPayload,
    board_id: uuid.UUID,
    service: BoardService = Depends(BoardService),
):
    return service.partial_update_board(board_id, payload)


@router.delete("/boards/{board_id}", tags=["boards"], response_model=DeleteBoardResponse)
def board_delete(board_id: uuid.UUID, service: BoardService = Depends(BoardService)):
    return service.delete_board(board_id)


# Members
@router.get(
    "/boards/{board_id}/members",
    tags=["members"],
    response_model=list[BoardMemberDetailsResponse],
)
def board_member_list(
    board_id: uuid.UUID,
    service: MembershipService = Depends(MembershipService),
):
    return service.list_members(board_id)


@router.post(
    "/boards/{board_id}/members",
    tags=["members"],
    status_code=status.HTTP_201_CREATED,
    response_model=AddBoardMemberResponse,
)
def board_member_add(
    payload: AddBoardMemberPayload,
    board_id: uuid.UUID,
    service: MembershipService = Depends(MembershipService),
):
    return service.add_member(board_id, payload)


@router.delete(
    "/boards/{board_id}/members/{user_id}",
    tags=["members"],
    response_model=RemoveBoardMemberResponse,
    response_model_exclude_none=True,
)
def board_member_remove(
    board_id: uuid.UUID,
    user_id: uuid.UUID = Depends(normalized_user_id),
    service: MembershipService = Depends(MembershipService),
):
    return service.remove_member(board_id, user_id)


# Tasks
@router.get("/tasks/board/{board_id}", tags=["tasks"], response_model=list[TaskResponse])
def tasks_for_board_list(board_id: uuid.UUID, service: TaskService = Depends(TaskService)):
    return service.list_tasks_for_board(board_id)


@router.get("/tasks/user/{user_id}", tags=["tasks"], response_model=list[TaskResponse])
def tasks_for_user_list(
    user_id: uuid.UUID = Depends(normalized_user_id),
    service: TaskService = Depends(TaskService),
):
    return service.list_tasks_for_user(user_id)


@router.post(
    "/tasks",
    tags=["tasks"],
    status_code=status.HTTP_201_CREATED,
    response_model=TaskResponse,
)
def task_create(payload: CreateTaskPayload, service: TaskService = Depends(TaskService)):
    return service.create_task(payload)


@router.patch("/tasks/{task_id}", tags=["tasks"], response_model=TaskResponse)
def task_partial_update(
    payload: PartialUpdateTaskPayload,
    task_id: uuid.UUID,
    service: TaskService = Depends(TaskService),
):
    return service.partial_update_task(task_id, payload)


@router.delete("/tasks/{task_id}", tags=["tasks"], response_model=DeleteTaskResponse)
def task_delete(task_id: uuid.UUID, service: TaskService = Depends(TaskService)):
    return service.delete_task(task_id)
