from typing import List, Optional

from fastapi import APIRouter
from sqlmodel import Session

from db import SessionDep
from models import Claim, Donation
from schemas import ClaimRead, DeliveryRequest, DonationRead, PickupRequest
from services import claims as claim_service
from .auth import UserRoleDep

router = APIRouter(tags=["claims"])


def claim_view(session: Session, claim: Claim, viewer_id: int) -> ClaimRead:
    """Claim with its donation embedded, as seen by ``viewer_id``."""
    donation = session.get(Donation, claim.donation_id)
    view = ClaimRead.model_validate(claim)
    if donation is not None:
        view.donation = DonationRead.for_viewer(
            donation, viewer_id, claimant_id=claim.volunteer_id
        )
    return view


@router.get("/", response_model=List[ClaimRead])
def list_my_claims(session: SessionDep, current: UserRoleDep):
    """
    Claims made by the current volunteer, newest first.
    """
    user = current["user"]
    claims = claim_service.list_claims_for_volunteer(session, user)
    return [claim_view(session, claim, user.id) for claim in claims]


@router.post("/{claim_id}/pickup")
def pickup(
    claim_id: int,
    body: PickupRequest,
    session: SessionDep,
    current: UserRoleDep,
):
    """
    Confirm pickup with the code the donor hands over.
    """
    claim = claim_service.mark_picked_up(session, claim_id, body.pickup_code)
    return {
        "message": "Marked as picked up successfully",
        "claim": claim_view(session, claim, current["user"].id),
    }


@router.post("/{claim_id}/deliver")
def deliver(
    claim_id: int,
    session: SessionDep,
    current: UserRoleDep,
    body: Optional[DeliveryRequest] = None,
):
    notes = body.notes if body else None
    claim = claim_service.mark_delivered(session, claim_id, notes)
    return {
        "message": "Marked as delivered successfully! Thank you for your service.",
        "claim": claim_view(session, claim, current["user"].id),
    }


@router.delete("/{claim_id}")
def cancel(claim_id: int, session: SessionDep, current: UserRoleDep):
    claim_service.cancel_claim(session, claim_id, current["user"])
    return {"message": "Claim cancelled successfully"}
