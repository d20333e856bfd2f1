import uuid

from sqlalchemy.orm.session import Session as SessionType
from sqlalchemy.sql import delete, exists, func, select

from ..core import BaseRepository, exceptions
from .models import User


class UserRepository(BaseRepository):
    model = User
    integrity_errors = {
        "users_pkey": ("user_id", exceptions.ConflictError, "User already exists"),
        "users_username_key": ("username", exceptions.ConflictError, None),
        "users_email_key": ("email", exceptions.ConflictError, None),
    }

    def check_username_unique(self, username: str, exclude_id: uuid.UUID | None = None) -> bool:
        with self.sessionmaker() as session:
            query = exists().where(self.model.username == username)
            if exclude_id is not None:
                query = query.where(self.model.id != exclude_id)
            return not session.scalar(query.select())

    def check_email_unique(self, email: str) -> bool:
        with self.sessionmaker() as session:
            return not session.scalar(exists().where(self.model.email == email).select())

    def get_by_email(self, email: str) -> User | None:
        with self.sessionmaker() as session:
            return self.session_get_by_email(session, email)

    def session_get_by_email(self, session: SessionType, email: str) -> User | None:
        return session.scalar(select(self.model).where(self.model.email == email))

    def session_get_user_by_id(self, session: SessionType, user_id: uuid.UUID) -> User:
        user = session.get(self.model, user_id)
        if not user:
            raise exceptions.NotFoundError("User")
        return user

    def partial_update_user(self, user_id: uuid.UUID, fields: dict) -> User:
        with self.transaction() as session:
            user = self.session_get_user_by_id(session, user_id)
            for name, value in fields.items():
                setattr(user, name, value)
            user.updated_at = func.current_timestamp()
            return self.session_flush(session, user)

    def session_delete(self, session: SessionType, user_id: uuid.UUID) -> None:
        session.execute(delete(self.model).where(self.model.id == user_id))


def get_user_repository() -> UserRepository:
    return UserRepository()
