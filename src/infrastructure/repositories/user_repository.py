# src/infrastructure/repositories/user_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import func, select, update

from src.infrastructure.db.models import User
from src.domain.state_machine import UserRole


class UserRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email)
        return self.db.execute(stmt).scalar_one_or_none()

    def upsert(self, email: str, name: str, role: UserRole) -> User:
        user = self.get_by_email(email)

        if user:
            user.name = name or user.name
            user.role = role
            return user

        user = User(email=email, name=name, role=role, is_fraud=False)
        self.db.add(user)
        self.db.flush()
        return user

    def flag_fraud(self, email: str) -> bool:
        stmt = (
            update(User)
            .where(User.email == email)
            .where(User.role == UserRole.VENDOR)
            .values(is_fraud=True)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def lock_active_vendor(self, email: str) -> bool:
        """
        Touches the vendor row only while it is not flagged for fraud.
        Holds the row until commit, so a concurrent flag_fraud waits.
        """
        stmt = (
            update(User)
            .where(User.email == email)
            .where(User.role == UserRole.VENDOR)
            .where(User.is_fraud.is_(False))
            .values(updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1
