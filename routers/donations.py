from typing import List

from fastapi import APIRouter

from db import SessionDep
from schemas import ClaimResult, DonationCreate, DonationRead, DonationUpdate
from services import claims as claim_service
from services import donations as donation_service
from .auth import UserRoleDep
from .claims import claim_view

router = APIRouter(tags=["donations"])


@router.get("/", response_model=List[DonationRead])
def list_donations(session: SessionDep, current: UserRoleDep):
    """
    List donations that can still be claimed.
    """
    user = current["user"]
    donations = donation_service.list_available(session)
    return [DonationRead.for_viewer(d, user.id) for d in donations]


@router.get("/my", response_model=List[DonationRead])
def my_donations(session: SessionDep, current: UserRoleDep):
    """
    Donations posted by the current donor, pickup codes included.
    """
    user = current["user"]
    donations = donation_service.list_for_donor(session, user)
    return [DonationRead.for_viewer(d, user.id) for d in donations]


@router.get("/{donation_id}", response_model=DonationRead)
def get_donation(donation_id: int, session: SessionDep, current: UserRoleDep):
    """
    Get a single donation by ID.
    """
    donation = donation_service.get_donation(session, donation_id)
    claim = donation_service.open_claim_for(session, donation_id)
    claimant_id = claim.volunteer_id if claim else None
    return DonationRead.for_viewer(donation, current["user"].id, claimant_id)


@router.post("/", response_model=DonationRead, status_code=201)
def create_donation(donation_in: DonationCreate, session: SessionDep, current: UserRoleDep):
    """
    Post a new donation. Only donors may do this.
    """
    user = current["user"]
    donation = donation_service.create_donation(session, donation_in, user)
    return DonationRead.for_viewer(donation, user.id)


@router.put("/{donation_id}", response_model=DonationRead)
def update_donation(
    donation_id: int,
    donation_in: DonationUpdate,
    session: SessionDep,
    current: UserRoleDep,
):
    user = current["user"]
    donation = donation_service.update_donation(session, donation_id, donation_in, user)
    return DonationRead.for_viewer(donation, user.id)


@router.delete("/{donation_id}")
def delete_donation(donation_id: int, session: SessionDep, current: UserRoleDep):
    donation_service.delete_donation(session, donation_id, current["user"])
    return {"message": "Donation deleted successfully"}


@router.post("/{donation_id}/claim", response_model=ClaimResult)
def claim_donation(donation_id: int, session: SessionDep, current: UserRoleDep):
    """
    Reserve the donation for the current volunteer.
    The pickup code in the response is what the donor will ask for.
    """
    user = current["user"]
    claim = claim_service.claim_donation(session, donation_id, user)
    view = claim_view(session, claim, user.id)
    return ClaimResult(
        claim_id=claim.id,
        pickup_code=view.donation.pickup_code,
        claim=view,
    )
