from typing import List, Optional

import structlog
from sqlalchemy import or_
from sqlmodel import Session, select

from errors import DonationLocked, Forbidden, NotFound
from models import Claim, ClaimStatus, Donation, DonationStatus, User, utcnow
from schemas import DonationCreate, DonationUpdate

from .locking import locked_donation

logger = structlog.get_logger(__name__)


def get_donation(session: Session, donation_id: int) -> Donation:
    donation = session.get(Donation, donation_id)
    if donation is None:
        raise NotFound("Donation not found")
    return donation


def create_donation(session: Session, donation_in: DonationCreate, donor: User) -> Donation:
    if "donor" not in donor.roles:
        raise Forbidden("Only donors can create donations")

    donation = Donation(
        donor_id=donor.id,
        title=donation_in.title,
        description=donation_in.description,
        quantity_kg=donation_in.quantity_kg,
        latitude=donation_in.latitude,
        longitude=donation_in.longitude,
        expires_at=donation_in.expires_at,
        status=DonationStatus.AVAILABLE,
    )
    session.add(donation)
    session.commit()
    session.refresh(donation)

    logger.info("Donation created", donation_id=donation.id, donor_id=donor.id)
    return donation


def list_available(session: Session) -> List[Donation]:
    """Available donations that have not expired, newest first."""
    now = utcnow()
    stmt = (
        select(Donation)
        .where(
            Donation.status == DonationStatus.AVAILABLE,
            or_(Donation.expires_at.is_(None), Donation.expires_at > now),
        )
        .order_by(Donation.created_at.desc(), Donation.id.desc())
    )
    return list(session.exec(stmt).all())


def list_for_donor(session: Session, donor: User) -> List[Donation]:
    stmt = (
        select(Donation)
        .where(
            Donation.donor_id == donor.id,
            Donation.status != DonationStatus.DELETED,
        )
        .order_by(Donation.created_at.desc(), Donation.id.desc())
    )
    return list(session.exec(stmt).all())


def open_claim_for(session: Session, donation_id: int) -> Optional[Claim]:
    """The donation's claim unless it was cancelled, if there is one."""
    stmt = select(Claim).where(
        Claim.donation_id == donation_id,
        Claim.status != ClaimStatus.CANCELLED,
    )
    return session.exec(stmt).first()


def _check_owner(donation: Donation, donor: User) -> None:
    if donation.donor_id != donor.id:
        raise Forbidden("You can only manage donations you posted")


def update_donation(
    session: Session,
    donation_id: int,
    donation_in: DonationUpdate,
    donor: User,
) -> Donation:
    """Apply a partial update. Only allowed while the donation is available."""
    with locked_donation(session, donation_id) as donation:
        _check_owner(donation, donor)
        if donation.status != DonationStatus.AVAILABLE:
            raise DonationLocked("Cannot update donation that has already been claimed")

        for field, value in donation_in.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(donation, field, value)
        session.add(donation)

    session.refresh(donation)
    logger.info("Donation updated", donation_id=donation_id)
    return donation


def delete_donation(session: Session, donation_id: int, donor: User) -> None:
    """Soft delete: the row stays, with status ``deleted``."""
    with locked_donation(session, donation_id) as donation:
        _check_owner(donation, donor)
        if donation.status != DonationStatus.AVAILABLE:
            raise DonationLocked("Cannot delete donation that has been claimed")

        donation.status = DonationStatus.DELETED
        session.add(donation)

    logger.info("Donation deleted", donation_id=donation_id)
