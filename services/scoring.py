from typing import NamedTuple

VOLUNTEER_MULTIPLIER = 2
DONOR_MULTIPLIER = 1


class ImpactPoints(NamedTuple):
    volunteer: int
    donor: int


def impact_points(quantity_kg: float) -> ImpactPoints:
    """
    Points awarded for one delivered donation.

    Fractions are truncated toward zero, so 2.7 kg earns the volunteer
    5 points and the donor 2.
    """
    return ImpactPoints(
        volunteer=int(quantity_kg * VOLUNTEER_MULTIPLIER),
        donor=int(quantity_kg * DONOR_MULTIPLIER),
    )
