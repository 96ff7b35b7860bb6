"""
Claim workflow: reserving a donation for one volunteer and carrying the
claim through pickup and delivery.

    active --(pickup code)--> picked_up --(deliver)--> delivered
       \\                         |
        +------> cancelled <-----+

Every transition runs under ``locked_donation``, so all changes to one
donation and its claim are totally ordered and land in a single commit.
"""
import secrets
from collections import defaultdict
from typing import List, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from errors import AlreadyClaimed, Forbidden, InvalidCredential, InvalidState, NotFound, WorkflowViolation
from models import CLAIM_TRANSITIONS, Claim, ClaimStatus, DonationStatus, User, utcnow

from . import notifications
from .locking import locked_donation
from .scoring import impact_points

logger = structlog.get_logger(__name__)

PICKUP_CODE_DIGITS = 6


def generate_pickup_code() -> str:
    """Six zero-padded digits, uniform over 000000-999999."""
    return f"{secrets.randbelow(10 ** PICKUP_CODE_DIGITS):0{PICKUP_CODE_DIGITS}d}"


def _get_claim(session: Session, claim_id: int) -> Claim:
    claim = session.get(Claim, claim_id)
    if claim is None:
        raise NotFound("Claim not found")
    return claim


def _reload_claim(session: Session, claim_id: int) -> Claim:
    # Called with the donation lock held; discard whatever was read before it
    return session.exec(
        select(Claim)
        .where(Claim.id == claim_id)
        .execution_options(populate_existing=True)
    ).one()


def _advance(claim: Claim, new_status: ClaimStatus) -> None:
    if new_status not in CLAIM_TRANSITIONS[claim.status]:
        raise InvalidState(f"Claim is already {claim.status.value}")
    claim.status = new_status


def claim_donation(session: Session, donation_id: int, volunteer: User) -> Claim:
    """
    Reserve a donation for ``volunteer``.

    Exactly one of any number of concurrent callers wins; the others wait
    for the winner's commit, then see the donation reserved and get
    AlreadyClaimed. The fresh pickup code is stored on the donation and
    the donor is notified in the same transaction.
    """
    if "volunteer" not in volunteer.roles:
        raise Forbidden("Only volunteers can claim donations")

    volunteer_id = volunteer.id
    volunteer_name = volunteer.name

    with locked_donation(session, donation_id) as donation:
        if donation.status != DonationStatus.AVAILABLE:
            logger.info(
                "Claim rejected",
                donation_id=donation_id,
                volunteer_id=volunteer_id,
                status=donation.status.value,
            )
            raise AlreadyClaimed()

        pickup_code = generate_pickup_code()
        donation.status = DonationStatus.RESERVED
        donation.pickup_code = pickup_code
        session.add(donation)

        claim = Claim(
            donation_id=donation_id,
            volunteer_id=volunteer_id,
            status=ClaimStatus.ACTIVE,
        )
        session.add(claim)
        try:
            session.flush()
        except IntegrityError as exc:
            # Another open claim slipped past the lock (multi-instance SQLite)
            raise AlreadyClaimed() from exc

        # TODO: move to an outbox once notifications stop sharing this commit
        notifications.notify(
            session,
            donation.donor_id,
            notifications.DONATION_CLAIMED,
            {
                "donation_id": donation_id,
                "donation_title": donation.title,
                "volunteer_name": volunteer_name,
                "pickup_code": pickup_code,
                "message": f"Your donation has been claimed by {volunteer_name}",
            },
        )

    logger.info(
        "Donation claimed",
        donation_id=donation_id,
        claim_id=claim.id,
        volunteer_id=volunteer_id,
    )
    return claim


def cancel_claim(session: Session, claim_id: int, volunteer: User) -> None:
    """Give the donation back: available again, pickup code cleared."""
    claim = _get_claim(session, claim_id)
    if claim.volunteer_id != volunteer.id:
        raise Forbidden("You can only cancel your own claims")

    with locked_donation(session, claim.donation_id) as donation:
        claim = _reload_claim(session, claim_id)
        _advance(claim, ClaimStatus.CANCELLED)
        # picked_up_at is only meaningful while picked up or delivered
        claim.picked_up_at = None

        donation.status = DonationStatus.AVAILABLE
        donation.pickup_code = None
        session.add(claim)
        session.add(donation)

    logger.info("Claim cancelled", claim_id=claim_id, donation_id=claim.donation_id)


def mark_picked_up(session: Session, claim_id: int, code: str) -> Claim:
    """
    Confirm the handoff from donor to volunteer.

    ``code`` must equal the donation's pickup code exactly. A wrong code
    changes nothing and may be retried.
    """
    claim = _get_claim(session, claim_id)

    with locked_donation(session, claim.donation_id) as donation:
        claim = _reload_claim(session, claim_id)
        if claim.status != ClaimStatus.ACTIVE:
            raise InvalidState(f"Claim is already {claim.status.value}")

        stored = donation.pickup_code
        if stored is None or not secrets.compare_digest(stored.encode(), code.encode()):
            logger.info("Pickup code rejected", claim_id=claim_id)
            raise InvalidCredential()

        _advance(claim, ClaimStatus.PICKED_UP)
        claim.picked_up_at = utcnow()
        donation.status = DonationStatus.PICKED_UP
        session.add(claim)
        session.add(donation)

    logger.info("Donation picked up", claim_id=claim_id, donation_id=claim.donation_id)
    return claim


def mark_delivered(session: Session, claim_id: int, notes: Optional[str] = None) -> Claim:
    """
    Close a picked-up claim and award impact points.

    The claim, the donation and both users' scores are written in one
    commit; a second call fails the transition check, so points are
    awarded once per claim.
    """
    claim = _get_claim(session, claim_id)

    with locked_donation(session, claim.donation_id) as donation:
        claim = _reload_claim(session, claim_id)
        if claim.status != ClaimStatus.PICKED_UP:
            raise WorkflowViolation()

        _advance(claim, ClaimStatus.DELIVERED)
        claim.delivered_at = utcnow()
        claim.notes = notes
        donation.status = DonationStatus.DELIVERED
        session.add(claim)
        session.add(donation)

        points = impact_points(donation.quantity_kg)
        awards = defaultdict(int)
        awards[claim.volunteer_id] += points.volunteer
        awards[donation.donor_id] += points.donor
        for user_id, amount in awards.items():
            user = session.get(User, user_id)
            if user is None:
                raise NotFound("User not found")
            # Increment in SQL so concurrent deliveries don't lose points
            user.impact_score = User.impact_score + amount
            session.add(user)

        notifications.notify(
            session,
            donation.donor_id,
            notifications.DONATION_DELIVERED,
            {
                "donation_id": donation.id,
                "donation_title": donation.title,
                "message": "Your donation has been delivered! Thank you for fighting hunger.",
            },
        )

    logger.info(
        "Donation delivered",
        claim_id=claim_id,
        donation_id=claim.donation_id,
        volunteer_points=points.volunteer,
        donor_points=points.donor,
    )
    return claim


def list_claims_for_volunteer(session: Session, volunteer: User) -> List[Claim]:
    stmt = (
        select(Claim)
        .where(Claim.volunteer_id == volunteer.id)
        .order_by(Claim.created_at.desc(), Claim.id.desc())
    )
    return list(session.exec(stmt).all())
