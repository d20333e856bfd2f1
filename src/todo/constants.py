from enum import StrEnum


class MemberRole(StrEnum):
    ADMIN = "admin"
    MEMBER = "member"


class TaskStatus(StrEnum):
    TODO = "To-Do"
    IN_PROGRESS = "In-Progress"
    IN_REVIEW = "In-Review"
    DONE = "Done"

    # The server accepts any status on update; the fixed ordering below is the workflow
    # the mobile client walks through one step at a time.
    def next(self) -> "TaskStatus":
        workflow = list(TaskStatus)
        return workflow[min(workflow.index(self) + 1, len(workflow) - 1)]

    def previous(self) -> "TaskStatus":
        workflow = list(TaskStatus)
        return workflow[max(workflow.index(self) - 1, 0)]


BOARD_NAME_MAX_LENGTH = 100
TASK_TITLE_MAX_LENGTH = 255
