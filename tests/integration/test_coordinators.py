from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import delete, func, select, update

from src.core import exceptions
from src.todo.constants import MemberRole
from src.todo.dto import (
    AddBoardMemberPayload,
    CreateBoardPayload,
    CreateTaskPayload,
    PartialUpdateTaskPayload,
)
from src.todo.models import Board, BoardMember, Task

from tests.integration.conftest import create_test_board, create_test_user, random_id


def count_members(TestSession, board_id) -> int:
    with TestSession() as session:
        return session.scalar(
            select(func.count()).select_from(BoardMember).where(BoardMember.board_id == board_id)
        )


def count_tasks(TestSession, board_id=None) -> int:
    query = select(func.count()).select_from(Task)
    if board_id is not None:
        query = query.where(Task.board_id == board_id)
    with TestSession() as session:
        return session.scalar(query)


def get_board(TestSession, board_id) -> Board:
    with TestSession() as session:
        return session.get(Board, board_id)


def get_role(TestSession, board_id, user_id) -> str | None:
    with TestSession() as session:
        member = session.get(BoardMember, (board_id, user_id))
        return member.role if member else None


def assert_member_count_consistent(TestSession, board_id) -> None:
    assert get_board(TestSession, board_id).member_count == count_members(TestSession, board_id)


def assert_task_count_consistent(TestSession, board_id) -> None:
    assert get_board(TestSession, board_id).task_count == count_tasks(TestSession, board_id)


class TestMembershipCoordinator:
    def test_add_member(self, TestSession, test_membership_service, test_board, test_users):
        response = test_membership_service.add_member(
            test_board.id, AddBoardMemberPayload(user_id=test_users[2].id)
        )

        assert response.member.role == MemberRole.MEMBER
        assert get_board(TestSession, test_board.id).member_count == 3
        assert_member_count_consistent(TestSession, test_board.id)

    def test_add_member_by_email(self, TestSession, test_membership_service, test_board, test_users):
        test_membership_service.add_member(
            test_board.id, AddBoardMemberPayload(email=test_users[2].email, role="admin")
        )

        assert get_role(TestSession, test_board.id, test_users[2].id) == "admin"

    def test_add_same_pair_twice(self, TestSession, test_membership_service, test_board, test_users):
        payload = AddBoardMemberPayload(user_id=test_users[2].id)
        test_membership_service.add_member(test_board.id, payload)

        with pytest.raises(exceptions.AlreadyMemberError):
            test_membership_service.add_member(test_board.id, payload)

        assert count_members(TestSession, test_board.id) == 3
        assert get_board(TestSession, test_board.id).member_count == 3

    def test_add_member_unknown_board(self, TestSession, test_membership_service, test_users):
        with pytest.raises(exceptions.NotFoundError) as e:
            test_membership_service.add_member(
                random_id(), AddBoardMemberPayload(user_id=test_users[2].id)
            )

        assert e.value.message == "Board not found"

    def test_add_member_failure_between_steps(
        self, TestSession, test_membership_service, test_board, test_users
    ):
        with patch.object(
            test_membership_service.board_repository,
            "session_increment_member_count",
            side_effect=RuntimeError("connection lost"),
        ):
            with pytest.raises(RuntimeError):
                test_membership_service.add_member(
                    test_board.id, AddBoardMemberPayload(user_id=test_users[2].id)
                )

        assert get_role(TestSession, test_board.id, test_users[2].id) is None
        assert get_board(TestSession, test_board.id).member_count == 2
        assert_member_count_consistent(TestSession, test_board.id)

    def test_remove_member(self, TestSession, test_membership_service, test_users):
        board = create_test_board(
            TestSession, test_users[0], members=[test_users[1], test_users[2]]
        )

        response = test_membership_service.remove_member(board.id, test_users[2].id)

        assert response.promoted is None
        assert get_board(TestSession, board.id).member_count == 2
        assert_member_count_consistent(TestSession, board.id)

    def test_remove_second_to_last_promotes_survivor(
        self, TestSession, test_membership_service, test_board, test_users
    ):
        response = test_membership_service.remove_member(test_board.id, test_users[0].id)

        assert response.promoted.user_id == test_users[1].id
        assert get_role(TestSession, test_board.id, test_users[1].id) == "admin"
        assert get_board(TestSession, test_board.id).member_count == 1

    def test_remove_not_a_member(self, TestSession, test_membership_service, test_board, test_users):
        with pytest.raises(exceptions.NotFoundError):
            test_membership_service.remove_member(test_board.id, test_users[2].id)

        assert get_board(TestSession, test_board.id).member_count == 2

    def test_remove_last_member_allowed(
        self, TestSession, test_membership_service, test_user
    ):
        board = create_test_board(TestSession, test_user)

        test_membership_service.remove_member(board.id, test_user.id)

        assert get_board(TestSession, board.id).member_count == 0
        assert count_members(TestSession, board.id) == 0

    def test_remove_last_member_refused(self, TestSession, test_membership_service, test_user):
        test_membership_service.allow_empty_boards = False
        board = create_test_board(TestSession, test_user)

        with pytest.raises(exceptions.LastMemberError):
            test_membership_service.remove_member(board.id, test_user.id)

        assert get_role(TestSession, board.id, test_user.id) == "admin"
        assert get_board(TestSession, board.id).member_count == 1

    def test_member_count_never_negative(self, TestSession, test_membership_service, test_user):
        board = create_test_board(TestSession, test_user)
        with TestSession.begin() as session:
            session.get(Board, board.id).member_count = 0

        test_membership_service.remove_member(board.id, test_user.id)

        assert get_board(TestSession, board.id).member_count == 0

    def test_remove_member_failure_between_steps(
        self, TestSession, test_membership_service, test_board, test_users
    ):
        with patch.object(
            test_membership_service.board_repository,
            "session_decrement_member_count",
            side_effect=RuntimeError("connection lost"),
        ):
            with pytest.raises(RuntimeError):
                test_membership_service.remove_member(test_board.id, test_users[0].id)

        assert get_role(TestSession, test_board.id, test_users[0].id) == "admin"
        assert get_role(TestSession, test_board.id, test_users[1].id) == "member"
        assert_member_count_consistent(TestSession, test_board.id)

    def test_remove_admin_promotes_earliest_joined(
        self, TestSession, test_membership_service, test_users
    ):
        board = create_test_board(
            TestSession, test_users[0], members=[test_users[1], test_users[2]]
        )
        joined = datetime(2026, 1, 1, 12, 0, 0)
        with TestSession.begin() as session:
            session.get(BoardMember, (board.id, test_users[2].id)).joined_at = joined
            session.get(BoardMember, (board.id, test_users[1].id)).joined_at = (
                joined + timedelta(minutes=5)
            )

        response = test_membership_service.remove_member(board.id, test_users[0].id)

        assert response.promoted.user_id == test_users[2].id
        assert get_role(TestSession, board.id, test_users[2].id) == "admin"
        assert get_role(TestSession, board.id, test_users[1].id) == "member"
        assert_member_count_consistent(TestSession, board.id)

    def test_add_member_to_emptied_board_becomes_admin(
        self, TestSession, test_membership_service, test_users
    ):
        board = create_test_board(TestSession, test_users[0])
        test_membership_service.remove_member(board.id, test_users[0].id)

        response = test_membership_service.add_member(
            board.id, AddBoardMemberPayload(user_id=test_users[1].id)
        )

        assert response.member.role == MemberRole.ADMIN
        assert get_role(TestSession, board.id, test_users[1].id) == "admin"
        assert_member_count_consistent(TestSession, board.id)

    def test_remove_member_deleted_by_another_request(
        self, TestSession, test_membership_service, test_board, test_users
    ):
        repository = test_membership_service.repository
        read_member = repository.session_get_member

        def read_then_lose_row(session, board_id, user_id):
            member = read_member(session, board_id, user_id)
            # The other request deletes the row and decrements before this one does
            session.execute(
                delete(BoardMember)
                .where(BoardMember.board_id == board_id, BoardMember.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            session.execute(
                update(Board)
                .where(Board.id == board_id)
                .values(member_count=Board.member_count - 1)
                .execution_options(synchronize_session=False)
            )
            return member

        with patch.object(
            repository, "session_get_member", side_effect=read_then_lose_row
        ), patch.object(
            test_membership_service.board_repository, "session_decrement_member_count"
        ) as decrement:
            with pytest.raises(exceptions.NotFoundError) as e:
                test_membership_service.remove_member(test_board.id, test_users[1].id)

        assert e.value.message == "Membership not found"
        decrement.assert_not_called()
        assert_member_count_consistent(TestSession, test_board.id)


class TestBoardLifecycle:
    def test_create_board_scenario(
        self, TestSession, test_board_service, test_membership_service, test_users
    ):
        u1, u2 = test_users[0], test_users[1]

        board = test_board_service.create_board(
            CreateBoardPayload(board_name="Sprint 1", description="desc", created_by=u1.id),
            test_membership_service,
        )
        assert board.member_count == 1
        assert get_role(TestSession, board.board_id, u1.id) == "admin"

        test_membership_service.add_member(
            board.board_id, AddBoardMemberPayload(user_id=u2.id, role="member")
        )
        assert get_board(TestSession, board.board_id).member_count == 2

        response = test_membership_service.remove_member(board.board_id, u1.id)
        assert response.promoted.user_id == u2.id
        assert get_role(TestSession, board.board_id, u2.id) == "admin"
        assert get_board(TestSession, board.board_id).member_count == 1

    def test_create_board_unknown_creator(
        self, test_board_service, test_membership_service, test_board_repository
    ):
        with pytest.raises(exceptions.InvalidReferenceError):
            test_board_service.create_board(
                CreateBoardPayload(board_name="Sprint 1", description="desc", created_by=random_id()),
                test_membership_service,
            )

        assert test_board_repository.get_count() == 0

    def test_create_board_rolls_back_when_membership_fails(
        self, test_board_service, test_membership_service, test_board_repository, test_user
    ):
        with patch.object(
            test_membership_service,
            "session_add_member",
            side_effect=RuntimeError("connection lost"),
        ):
            with pytest.raises(RuntimeError):
                test_board_service.create_board(
                    CreateBoardPayload(
                        board_name="Sprint 1", description="desc", created_by=test_user.id
                    ),
                    test_membership_service,
                )

        assert test_board_repository.get_count() == 0

    def test_delete_board(
        self, TestSession, test_board_service, test_task_service, test_board, test_users
    ):
        test_task_service.create_task(
            CreateTaskPayload(title="Fix bug", board_id=test_board.id, created_by=test_users[0].id)
        )

        response = test_board_service.delete_board(test_board.id)

        assert response.deleted_board.board_id == test_board.id
        assert get_board(TestSession, test_board.id) is None
        assert count_members(TestSession, test_board.id) == 0
        assert count_tasks(TestSession) == 0

    def test_delete_missing_board(self, test_board_service):
        with pytest.raises(exceptions.NotFoundError):
            test_board_service.delete_board(random_id())


class TestTaskLifecycleCoordinator:
    def test_create_and_delete_scenario(self, TestSession, test_task_service, test_board, test_users):
        assert get_board(TestSession, test_board.id).task_count == 0

        task = test_task_service.create_task(
            CreateTaskPayload(title="Fix bug", board_id=test_board.id, created_by=test_users[0].id)
        )
        assert get_board(TestSession, test_board.id).task_count == 1
        assert_task_count_consistent(TestSession, test_board.id)

        test_task_service.delete_task(task.task_id)
        assert get_board(TestSession, test_board.id).task_count == 0
        assert_task_count_consistent(TestSession, test_board.id)

    def test_positions_increase(self, test_task_service, test_board, test_users):
        positions = [
            test_task_service.create_task(
                CreateTaskPayload(title=f"task {i}", board_id=test_board.id, created_by=test_users[0].id)
            ).position
            for i in range(3)
        ]

        assert positions == [0, 1, 2]

    def test_empty_due_date_is_stored_as_null(
        self, TestSession, test_task_service, test_board, test_users
    ):
        task = test_task_service.create_task(
            CreateTaskPayload(
                title="Fix bug", board_id=test_board.id, created_by=test_users[0].id, due_date=""
            )
        )

        with TestSession() as session:
            assert session.get(Task, task.task_id).due_date is None

    def test_create_on_nonexistent_board(self, TestSession, test_task_service, test_users):
        with pytest.raises(exceptions.BoardNotFoundError):
            test_task_service.create_task(
                CreateTaskPayload(title="Fix bug", board_id=random_id(), created_by=test_users[0].id)
            )

        assert count_tasks(TestSession) == 0

    def test_create_rolls_back_when_counter_misses(
        self, TestSession, test_task_service, test_board, test_users
    ):
        with patch.object(
            test_task_service.board_repository, "session_increment_task_count", return_value=0
        ):
            with pytest.raises(exceptions.BoardNotFoundError):
                test_task_service.create_task(
                    CreateTaskPayload(
                        title="Fix bug", board_id=test_board.id, created_by=test_users[0].id
                    )
                )

        assert count_tasks(TestSession) == 0
        assert get_board(TestSession, test_board.id).task_count == 0

    def test_create_unknown_assignee(self, TestSession, test_task_service, test_board, test_users):
        with pytest.raises(exceptions.InvalidReferenceError) as e:
            test_task_service.create_task(
                CreateTaskPayload(
                    title="Fix bug",
                    board_id=test_board.id,
                    created_by=test_users[0].id,
                    assigned_to=random_id(),
                )
            )

        assert e.value.message == "Invalid assigned_to user ID - user does not exist"
        assert count_tasks(TestSession) == 0

    def test_delete_task_failure_between_steps(
        self, TestSession, test_task_service, test_board, test_users
    ):
        task = test_task_service.create_task(
            CreateTaskPayload(title="Fix bug", board_id=test_board.id, created_by=test_users[0].id)
        )

        with patch.object(
            test_task_service.board_repository,
            "session_decrement_task_count",
            side_effect=RuntimeError("connection lost"),
        ):
            with pytest.raises(RuntimeError):
                test_task_service.delete_task(task.task_id)

        assert count_tasks(TestSession, test_board.id) == 1
        assert_task_count_consistent(TestSession, test_board.id)

    def test_delete_task_deleted_by_another_request(
        self, TestSession, test_task_service, test_board, test_users
    ):
        task = test_task_service.create_task(
            CreateTaskPayload(title="Fix bug", board_id=test_board.id, created_by=test_users[0].id)
        )
        repository = test_task_service.repository
        read_task = repository.session_get_task_by_id

        def read_then_lose_row(session, task_id):
            found = read_task(session, task_id)
            session.execute(
                delete(Task)
                .where(Task.id == task_id)
                .execution_options(synchronize_session=False)
            )
            session.execute(
                update(Board)
                .where(Board.id == found.board_id)
                .values(task_count=Board.task_count - 1)
                .execution_options(synchronize_session=False)
            )
            return found

        with patch.object(
            repository, "session_get_task_by_id", side_effect=read_then_lose_row
        ), patch.object(
            test_task_service.board_repository, "session_decrement_task_count"
        ) as decrement:
            with pytest.raises(exceptions.NotFoundError) as e:
                test_task_service.delete_task(task.task_id)

        assert e.value.message == "Task not found"
        decrement.assert_not_called()
        assert_task_count_consistent(TestSession, test_board.id)

    def test_update_status_freely(self, test_task_service, test_board, test_users):
        task = test_task_service.create_task(
            CreateTaskPayload(title="Fix bug", board_id=test_board.id, created_by=test_users[0].id)
        )

        updated = test_task_service.partial_update_task(
            task.task_id, PartialUpdateTaskPayload(status="Done", tags=["shipped"])
        )

        assert updated.status == "Done"
        assert updated.tags == ["shipped"]


class TestUserLifecycle:
    def test_delete_user_cascade(
        self,
        TestSession,
        test_user_service,
        test_board_service,
        test_membership_service,
        test_task_service,
        test_users,
    ):
        owner, leaving, other = test_users
        owned = create_test_board(TestSession, leaving, members=[owner])
        joined = create_test_board(TestSession, owner, members=[leaving, other])
        pair = create_test_board(TestSession, other, members=[leaving])
        task = test_task_service.create_task(
            CreateTaskPayload(
                title="Fix bug", board_id=joined.id, created_by=leaving.id, assigned_to=leaving.id
            )
        )

        response = test_user_service.delete_user(
            leaving.id, test_board_service, test_membership_service, test_task_service
        )

        assert response.deleted_user.user_id == leaving.id
        assert get_board(TestSession, owned.id) is None
        assert get_board(TestSession, joined.id).member_count == 2
        assert_member_count_consistent(TestSession, joined.id)
        assert get_board(TestSession, pair.id).member_count == 1
        assert get_role(TestSession, pair.id, other.id) == "admin"
        with TestSession() as session:
            remaining = session.get(Task, task.task_id)
            assert remaining.created_by is None
            assert remaining.assigned_to is None
        assert test_user_service.repository.get_by_id(leaving.id) is None

    def test_delete_user_promotes_survivor(
        self,
        TestSession,
        test_user_service,
        test_board_service,
        test_membership_service,
        test_task_service,
    ):
        admin = create_test_user(TestSession, "admin_user")
        member = create_test_user(TestSession, "member_user")
        creator = create_test_user(TestSession, "creator")
        board = create_test_board(TestSession, creator, members=[member])
        test_membership_service.add_member(board.id, AddBoardMemberPayload(user_id=admin.id, role="admin"))
        test_membership_service.remove_member(board.id, creator.id)

        test_user_service.delete_user(
            admin.id, test_board_service, test_membership_service, test_task_service
        )

        assert get_role(TestSession, board.id, member.id) == "admin"
        assert get_board(TestSession, board.id).member_count == 1
