"""Repositories for users, circles, circle membership and invitations."""
from typing import Optional

from sqlalchemy.orm import Session

from circle_scheduler.models.circle import Circle, CircleMember, CircleRole
from circle_scheduler.models.invitation import CircleInvitation
from circle_scheduler.models.user import User


class UserRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.user_id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def list_all(self) -> list[User]:
        return self.db.query(User).order_by(User.created_at).all()

    def add(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user


class CircleRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, circle_id: str) -> Optional[Circle]:
        return self.db.query(Circle).filter(Circle.circle_id == circle_id).first()

    def add(self, circle: Circle) -> Circle:
        self.db.add(circle)
        self.db.flush()
        return circle


class CircleMemberRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def list_members(self, circle_id: str) -> list[CircleMember]:
        return (
            self.db.query(CircleMember)
            .filter(CircleMember.circle_id == circle_id)
            .order_by(CircleMember.joined_at, CircleMember.user_id)
            .all()
        )

    def find_member(self, circle_id: str, user_id: str) -> Optional[CircleMember]:
        return (
            self.db.query(CircleMember)
            .filter(CircleMember.circle_id == circle_id, CircleMember.user_id == user_id)
            .first()
        )

    def list_circle_ids_for_user(self, user_id: str) -> list[str]:
        rows = (
            self.db.query(CircleMember.circle_id)
            .filter(CircleMember.user_id == user_id)
            .order_by(CircleMember.joined_at, CircleMember.circle_id)
            .all()
        )
        return [row.circle_id for row in rows]

    def add(self, circle_id: str, user_id: str, role: CircleRole) -> CircleMember:
        member = CircleMember(circle_id=circle_id, user_id=user_id, role=role)
        self.db.add(member)
        self.db.flush()
        return member

    def remove(self, member: CircleMember) -> None:
        self.db.delete(member)
        self.db.flush()


class CircleInvitationRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_token(self, token: str) -> Optional[CircleInvitation]:
        return self.db.query(CircleInvitation).filter(CircleInvitation.token == token).first()

    def add(self, invitation: CircleInvitation) -> CircleInvitation:
        self.db.add(invitation)
        self.db.flush()
        return invitation
