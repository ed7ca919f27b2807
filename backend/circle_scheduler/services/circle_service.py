"""Circle membership management and email invitations.

An invitation is a stored row with a random token. The email carries the
token; accepting it checks expiry and status and matches the account email.
"""
import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from circle_scheduler.clock import Clock, system_clock
from circle_scheduler.config import settings
from circle_scheduler.errors import ErrorKind, Result
from circle_scheduler.models.circle import MANAGER_ROLES, Circle, CircleMember, CircleRole
from circle_scheduler.models.invitation import CircleInvitation, InvitationStatus
from circle_scheduler.models.outbox_event import OutboxEventType
from circle_scheduler.repositories.circle_repository import (
    CircleInvitationRepository,
    CircleMemberRepository,
    CircleRepository,
    UserRepository,
)
from circle_scheduler.services import notification_templates, outbox_service

logger = logging.getLogger(__name__)


def create_circle(db: Session, creator_id: str, name: str, description: Optional[str] = None) -> Result[Circle]:
    """Create a circle. The creator is added as its owner."""
    if UserRepository(db).get(creator_id) is None:
        return Result.fail(ErrorKind.not_found, "Creator user not found")
    try:
        circle = CircleRepository(db).add(Circle(name=name, description=description, created_by=creator_id))
        CircleMemberRepository(db).add(circle.circle_id, creator_id, CircleRole.owner)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to create circle '%s': %s", name, exc)
        return Result.fail(ErrorKind.store_error, "Could not create circle")
    db.refresh(circle)
    logger.info("Created circle '%s' (%s) by user %s", circle.name, circle.circle_id, creator_id)
    return Result.success(circle)


def _require_manager(db: Session, circle_id: str, actor_id: str) -> Result[Circle]:
    circle = CircleRepository(db).get(circle_id)
    if circle is None:
        return Result.fail(ErrorKind.not_found, "Circle not found")
    membership = CircleMemberRepository(db).find_member(circle_id, actor_id)
    if membership is None or membership.role not in MANAGER_ROLES:
        return Result.fail(ErrorKind.forbidden, "Only circle owners and admins can manage members")
    return Result.success(circle)


def add_member(
    db: Session, circle_id: str, actor_id: str, user_id: str, role: CircleRole = CircleRole.member
) -> Result[CircleMember]:
    result = _require_manager(db, circle_id, actor_id)
    if not result.ok:
        return Result(error=result.error)
    if role == CircleRole.owner:
        return Result.fail(ErrorKind.validation_failed, "A circle has exactly one owner")
    if UserRepository(db).get(user_id) is None:
        return Result.fail(ErrorKind.not_found, "User not found")

    members = CircleMemberRepository(db)
    if members.find_member(circle_id, user_id) is not None:
        return Result.fail(ErrorKind.conflict, "User is already a member of this circle")
    try:
        member = members.add(circle_id, user_id, role)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to add user %s to circle %s: %s", user_id, circle_id, exc)
        return Result.fail(ErrorKind.store_error, "Could not add member")
    db.refresh(member)
    logger.info("Added user %s to circle %s as %s", user_id, circle_id, role.value)
    return Result.success(member)


def remove_member(db: Session, circle_id: str, actor_id: str, user_id: str) -> Result[None]:
    """Managers remove anyone but the owner; any member may leave."""
    members = CircleMemberRepository(db)
    if actor_id != user_id:
        result = _require_manager(db, circle_id, actor_id)
        if not result.ok:
            return Result(error=result.error)
    member = members.find_member(circle_id, user_id)
    if member is None:
        return Result.fail(ErrorKind.not_found, "Membership not found")
    if member.role == CircleRole.owner:
        return Result.fail(ErrorKind.conflict, "The owner cannot leave or be removed")
    try:
        members.remove(member)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to remove user %s from circle %s: %s", user_id, circle_id, exc)
        return Result.fail(ErrorKind.store_error, "Could not remove member")
    logger.info("Removed user %s from circle %s", user_id, circle_id)
    return Result.success(None)


def invite_by_email(
    db: Session, circle_id: str, actor_id: str, email: str, clock: Clock = system_clock
) -> Result[CircleInvitation]:
    """Store an invitation and queue its email; registered users get an in-app accept link."""
    result = _require_manager(db, circle_id, actor_id)
    if not result.ok:
        return Result(error=result.error)
    circle = result.value

    users = UserRepository(db)
    invitee = users.get_by_email(email)
    if invitee is not None and CircleMemberRepository(db).find_member(circle_id, invitee.user_id):
        return Result.fail(ErrorKind.conflict, "User is already a member of this circle")
    inviter = users.get(actor_id)

    try:
        invitation = CircleInvitationRepository(db).add(
            CircleInvitation(
                circle_id=circle_id,
                invited_email=email,
                invited_by=actor_id,
                token=secrets.token_urlsafe(32),
                status=InvitationStatus.pending,
                expires_at=clock.now() + timedelta(days=settings.INVITATION_TTL_DAYS),
            )
        )
        outbox_service.enqueue(
            db,
            aggregate_type="circle",
            aggregate_id=circle_id,
            event_type=OutboxEventType.EMAIL_INVITATION,
            payload={
                "inviterName": inviter.display_name if inviter else "Someone",
                "circleName": circle.name,
                "email": email,
                "token": invitation.token,
                "isRegistered": invitee is not None,
            },
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to queue invitation to %s for circle %s: %s", email, circle_id, exc)
        return Result.fail(ErrorKind.store_error, "Could not send invitation")
    db.refresh(invitation)
    logger.info("Queued invitation for %s to circle %s", email, circle_id)
    return Result.success(invitation)


def get_invitation(db: Session, token: str) -> Result[CircleInvitation]:
    invitation = CircleInvitationRepository(db).get_by_token(token)
    if invitation is None:
        return Result.fail(ErrorKind.not_found, "Invitation not found")
    return Result.success(invitation)


def accept_invitation(db: Session, token: str, user_id: str, clock: Clock = system_clock) -> Result[CircleMember]:
    """Join the invited circle as a member.

    The accepting user's email must match the invited address. Accepting
    while already a member closes the invitation and reports a conflict.
    """
    invitation = CircleInvitationRepository(db).get_by_token(token)
    if invitation is None:
        return Result.fail(ErrorKind.not_found, "Invitation not found")
    now = clock.now()
    if invitation.status == InvitationStatus.expired or now > invitation.expires_at:
        return Result.fail(ErrorKind.validation_failed, "Invitation has expired")
    if invitation.status == InvitationStatus.accepted:
        return Result.fail(ErrorKind.validation_failed, "Invitation has already been accepted")
    if invitation.status == InvitationStatus.declined:
        return Result.fail(ErrorKind.validation_failed, "Invitation has been declined")

    user = UserRepository(db).get(user_id)
    if user is None or not user.email:
        return Result.fail(ErrorKind.not_found, "User not found")
    if user.email.lower() != invitation.invited_email.lower():
        return Result.fail(ErrorKind.forbidden, "Invitation email does not match your account email")

    members = CircleMemberRepository(db)
    try:
        if members.find_member(invitation.circle_id, user_id) is not None:
            invitation.status = InvitationStatus.accepted
            invitation.accepted_at = now
            db.commit()
            return Result.fail(ErrorKind.conflict, "You are already a member of this circle")
        member = members.add(invitation.circle_id, user_id, CircleRole.member)
        invitation.status = InvitationStatus.accepted
        invitation.accepted_at = now
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to accept invitation for circle %s by %s: %s", invitation.circle_id, user_id, exc)
        return Result.fail(ErrorKind.store_error, "Could not accept invitation")
    db.refresh(member)
    logger.info("User %s joined circle %s by invitation", user_id, invitation.circle_id)

    circle = CircleRepository(db).get(invitation.circle_id)
    if circle is not None and circle.created_by != user_id:
        notice = notification_templates.member_joined(circle.created_by, user.display_name, circle)
        outbox_service.run_secondary(
            db,
            "notify owner of new member",
            lambda: outbox_service.notify(db, notice, aggregate_type="circle", aggregate_id=circle.circle_id),
        )
    return Result.success(member)
