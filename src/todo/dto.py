import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, field_validator, model_validator

from ..core.identity import parse_user_id
from ..core.validators import check_length, require_any_field
from .constants import BOARD_NAME_MAX_LENGTH, TASK_TITLE_MAX_LENGTH, MemberRole, TaskStatus


def normalize_identifier(value: Any) -> Any:
    if isinstance(value, str):
        return parse_user_id(value)
    return value


def empty_due_date_to_none(value: Any) -> Any:
    # An empty due date means "no due date"; it is never stored as an empty string
    if isinstance(value, str) and not value.strip():
        return None
    return value


def validate_status(value: Any) -> Any:
    if value not in {status.value for status in TaskStatus}:
        raise ValueError(
            f"Invalid status. Must be one of: {', '.join(status.value for status in TaskStatus)}"
        )
    return value


def validate_tags(value: Any) -> Any:
    if value is not None and not isinstance(value, list):
        raise ValueError("Tags must be an array")
    return value


# Board
class CreateBoardPayload(BaseModel):
    board_name: str
    description: str
    created_by: uuid.UUID

    @field_validator("board_name")
    @classmethod
    def validate_board_name(cls, value: str) -> str:
        return check_length(value, "Board name", max_length=BOARD_NAME_MAX_LENGTH)

    @field_validator("description")
    @classmethod
    def validate_description(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Description is required")
        return value

    @field_validator("created_by", mode="before")
    @classmethod
    def normalize_created_by(cls, value: Any) -> Any:
        return normalize_identifier(value)


class PartialUpdateBoardPayload(BaseModel):
    board_name: str | None = None
    description: str | None = None

    @model_validator(mode="before")
    @classmethod
    def validate_at_least_one_field_present(cls, data: Any) -> Any:
        return require_any_field(data, ["board_name", "description"])

    @field_validator("board_name")
    @classmethod
    def validate_board_name(cls, value: str | None) -> str:
        if value is None:
            raise ValueError("Board name cannot be null")
        return check_length(value, "Board name", max_length=BOARD_NAME_MAX_LENGTH)


class BoardResponse(BaseModel):
    board_id: uuid.UUID
    board_name: str
    description: str | None
    created_by: uuid.UUID
    member_count: int
    task_count: int
    created_at: datetime
    updated_at: datetime


class BoardResponseFlat(BaseModel):
    board_id: uuid.UUID
    board_name: str


class DeleteBoardResponse(BaseModel):
    message: str
    deleted_board: BoardResponseFlat


# Board members
class AddBoardMemberPayload(BaseModel):
    user_id: uuid.UUID | None = None
    email: EmailStr | None = None
    role: MemberRole = MemberRole.MEMBER

    @field_validator("user_id", mode="before")
    @classmethod
    def normalize_user_id(cls, value: Any) -> Any:
        return normalize_identifier(value)

    @model_validator(mode="after")
    def validate_user_reference_present(self) -> "AddBoardMemberPayload":
        if self.user_id is None and self.email is None:
            raise ValueError("Either user_id or email must be provided")
        return self


class BoardMemberResponse(BaseModel):
    board_id: uuid.UUID
    user_id: uuid.UUID
    role: MemberRole
    joined_at: datetime


class BoardMemberDetailsResponse(BaseModel):
    user_id: uuid.UUID
    username: str
    email: EmailStr
    full_name: str
    avatar_url: str | None
    role: MemberRole
    joined_at: datetime


class PromotedMemberResponse(BaseModel):
    user_id: uuid.UUID
    role: MemberRole


class AddBoardMemberResponse(BaseModel):
    message: str
    member: BoardMemberResponse


class RemoveBoardMemberResponse(BaseModel):
    message: str
    removed: BoardMemberResponse
    promoted: PromotedMemberResponse | None = None


# Task
class CreateTaskPayload(BaseModel):
    title: str
    created_by: uuid.UUID
    board_id: uuid.UUID
    description: str | None = None
    assigned_to: uuid.UUID | None = None
    due_date: datetime | None = None
    tags: list[str] | None = None
    status: TaskStatus = TaskStatus.TODO

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        return check_length(value, "Title", max_length=TASK_TITLE_MAX_LENGTH)

    @field_validator("created_by", "assigned_to", mode="before")
    @classmethod
    def normalize_user_references(cls, value: Any) -> Any:
        return normalize_identifier(value)

    @field_validator("due_date", mode="before")
    @classmethod
    def normalize_due_date(cls, value: Any) -> Any:
        return empty_due_date_to_none(value)

    @field_validator("tags", mode="before")
    @classmethod
    def check_tags(cls, value: Any) -> Any:
        return validate_tags(value)

    @field_validator("status", mode="before")
    @classmethod
    def check_status(cls, value: Any) -> Any:
        if value is None:
            return TaskStatus.TODO
        return validate_status(value)


class PartialUpdateTaskPayload(BaseModel):
    title: str | None = None
    description: str | None = None
    assigned_to: uuid.UUID | None = None
    due_date: datetime | None = None
    tags: list[str] | None = None
    status: TaskStatus | None = None

    @model_validator(mode="before")
    @classmethod
    def validate_at_least_one_field_present(cls, data: Any) -> Any:
        return require_any_field(
            data, ["title", "description", "assigned_to", "due_date", "tags", "status"]
        )

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str | None) -> str:
        if value is None:
            raise ValueError("Title cannot be null")
        return check_length(value, "Title", max_length=TASK_TITLE_MAX_LENGTH)

    @field_validator("assigned_to", mode="before")
    @classmethod
    def normalize_assigned_to(cls, value: Any) -> Any:
        return normalize_identifier(value)

    @field_validator("due_date", mode="before")
    @classmethod
    def normalize_due_date(cls, value: Any) -> Any:
        return empty_due_date_to_none(value)

    @field_validator("tags", mode="before")
    @classmethod
    def check_tags(cls, value: Any) -> Any:
        return validate_tags(value)

    @field_validator("status", mode="before")
    @classmethod
    def check_status(cls, value: Any) -> Any:
        # Any of the four statuses is accepted regardless of the current one
        return validate_status(value)


class TaskResponse(BaseModel):
    task_id: uuid.UUID
    board_id: uuid.UUID
    title: str
    description: str | None
    created_by: uuid.UUID | None
    assigned_to: uuid.UUID | None
    due_date: datetime | None
    tags: list[str] | None
    status: TaskStatus
    position: int
    created_at: datetime
    updated_at: datetime


class TaskResponseFlat(BaseModel):
    task_id: uuid.UUID
    board_id: uuid.UUID
    title: str


class DeleteTaskResponse(BaseModel):
    message: str
    deleted_task: TaskResponseFlat
