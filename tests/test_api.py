"""
HTTP tests: auth, donation endpoints and the claim workflow over the API
"""
import re

import pytest

from config import get_settings
from services.locking import donation_locks


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def donor_client(login_as, donor):
    return login_as(donor, "donor")


@pytest.fixture
def volunteer_client(login_as, volunteer):
    return login_as(volunteer, "volunteer")


@pytest.fixture
def other_client(login_as, other_volunteer):
    return login_as(other_volunteer, "volunteer")


@pytest.fixture
def posted(donor_client):
    response = donor_client.post(
        "/donations/",
        json={
            "title": "Catering leftovers",
            "description": "Sandwiches and fruit",
            "quantity_kg": 5.0,
            "latitude": 40.7128,
            "longitude": -74.0060,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def claimed(volunteer_client, posted):
    response = volunteer_client.post(f"/donations/{posted['id']}/claim")
    assert response.status_code == 200, response.text
    return response.json()


# ============================================================================
# AUTH
# ============================================================================

class TestAuth:

    def test_register_logs_in(self, app_client):
        client = app_client()
        response = client.post(
            "/register",
            json={
                "email": "new@example.com",
                "name": "New Volunteer",
                "password": "pw",
                "is_volunteer": True,
            },
        )
        assert response.status_code == 201
        assert response.json()["role"] == "volunteer"

        me = client.get("/me").json()
        assert me["email"] == "new@example.com"
        assert me["roles"] == ["volunteer"]
        assert me["impact_score"] == 0

    def test_register_requires_a_role(self, app_client):
        response = app_client().post(
            "/register",
            json={"email": "x@example.com", "name": "X", "password": "pw"},
        )
        assert response.status_code == 400

    def test_duplicate_email_rejected(self, app_client, donor):
        response = app_client().post(
            "/register",
            json={"email": donor.email, "name": "Again", "password": "pw", "is_donor": True},
        )
        assert response.status_code == 400

    def test_wrong_password(self, app_client, donor):
        response = app_client().post(
            "/login",
            json={"email": donor.email, "password": "nope", "role": "donor"},
        )
        assert response.status_code == 400

    def test_login_with_role_not_held(self, app_client, donor):
        response = app_client().post(
            "/login",
            json={"email": donor.email, "password": "correct horse battery staple", "role": "volunteer"},
        )
        assert response.status_code == 400

    def test_requests_without_session_are_rejected(self, app_client):
        assert app_client().get("/donations/").status_code == 401

    def test_logout_clears_session(self, donor_client):
        donor_client.post("/logout")
        assert donor_client.get("/me").status_code == 401

    def test_update_profile(self, volunteer_client):
        response = volunteer_client.put(
            "/profile",
            json={"name": "Vera V.", "phone": "+1 555 0100", "latitude": 40.7, "longitude": -74.0},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Profile updated successfully"
        assert body["user"]["name"] == "Vera V."
        assert body["user"]["phone"] == "+1 555 0100"
        assert body["user"]["latitude"] == 40.7
        assert body["user"]["longitude"] == -74.0

        me = volunteer_client.get("/me").json()
        assert me["phone"] == "+1 555 0100"

    def test_profile_update_keeps_missing_fields(self, volunteer_client, volunteer):
        volunteer_client.put("/profile", json={"phone": "555", "latitude": 1.5})

        user = volunteer_client.put("/profile", json={"longitude": 2.5}).json()["user"]

        assert user["name"] == volunteer.name
        assert user["phone"] == "555"
        assert user["latitude"] == 1.5
        assert user["longitude"] == 2.5

    def test_blank_phone_clears_it(self, volunteer_client):
        volunteer_client.put("/profile", json={"phone": "555"})

        user = volunteer_client.put("/profile", json={"phone": "  "}).json()["user"]

        assert user["phone"] is None

    def test_profile_rejects_bad_coordinates(self, volunteer_client):
        assert volunteer_client.put("/profile", json={"latitude": 91}).status_code == 422

    def test_profile_requires_session(self, app_client):
        assert app_client().put("/profile", json={"name": "Nobody"}).status_code == 401


# ============================================================================
# DONATIONS
# ============================================================================

class TestDonationEndpoints:

    def test_post_and_list(self, donor_client, volunteer_client, posted):
        assert posted["status"] == "available"
        assert posted["is_available"] is True

        listed = volunteer_client.get("/donations/").json()
        assert [d["id"] for d in listed] == [posted["id"]]

    def test_volunteer_cannot_post(self, volunteer_client):
        response = volunteer_client.post(
            "/donations/", json={"title": "Soup", "quantity_kg": 2}
        )
        assert response.status_code == 403

    def test_invalid_quantity_rejected(self, donor_client):
        response = donor_client.post(
            "/donations/", json={"title": "Soup", "quantity_kg": 0}
        )
        assert response.status_code == 422

    def test_unknown_donation_is_404(self, volunteer_client):
        response = volunteer_client.get("/donations/9999")
        assert response.status_code == 404

    def test_update_and_delete_while_available(self, donor_client, posted):
        response = donor_client.put(
            f"/donations/{posted['id']}", json={"title": "Catering leftovers (veg)"}
        )
        assert response.status_code == 200
        assert response.json()["title"] == "Catering leftovers (veg)"

        response = donor_client.delete(f"/donations/{posted['id']}")
        assert response.status_code == 200
        assert donor_client.get("/donations/my").json() == []

    def test_claimed_donation_is_frozen(self, donor_client, posted, claimed):
        response = donor_client.put(f"/donations/{posted['id']}", json={"quantity_kg": 1})
        assert response.status_code == 409

        response = donor_client.delete(f"/donations/{posted['id']}")
        assert response.status_code == 409

    def test_pickup_code_visible_to_donor_and_claimant_only(
        self, donor_client, volunteer_client, other_client, posted, claimed
    ):
        url = f"/donations/{posted['id']}"
        code = claimed["pickup_code"]

        assert donor_client.get(url).json()["pickup_code"] == code
        assert volunteer_client.get(url).json()["pickup_code"] == code
        assert other_client.get(url).json()["pickup_code"] is None
        assert donor_client.get("/donations/my").json()[0]["pickup_code"] == code


# ============================================================================
# CLAIM WORKFLOW
# ============================================================================

class TestClaimWorkflow:

    def test_claim_returns_pickup_code(self, posted, claimed):
        assert re.fullmatch(r"\d{6}", claimed["pickup_code"])
        assert claimed["claim"]["status"] == "active"
        assert claimed["claim"]["donation"]["status"] == "reserved"
        assert claimed["claim_id"] == claimed["claim"]["id"]

    def test_losing_claimant_sees_no_longer_available(self, other_client, posted, claimed):
        response = other_client.post(f"/donations/{posted['id']}/claim")

        assert response.status_code == 409
        assert response.json() == {"detail": "Donation is no longer available"}

    def test_donor_cannot_claim(self, donor_client, posted):
        response = donor_client.post(f"/donations/{posted['id']}/claim")
        assert response.status_code == 403

    def test_claim_unknown_donation(self, volunteer_client):
        response = volunteer_client.post("/donations/9999/claim")
        assert response.status_code == 404

    def test_lock_timeout_is_retryable(self, volunteer_client, posted, monkeypatch):
        monkeypatch.setattr(get_settings(), "lock_timeout_ms", 50)

        with donation_locks.hold(posted["id"], timeout=1):
            response = volunteer_client.post(f"/donations/{posted['id']}/claim")

        assert response.status_code == 503
        assert response.json() == {"detail": "Storage temporarily unavailable, retry"}

        response = volunteer_client.post(f"/donations/{posted['id']}/claim")
        assert response.status_code == 200

    def test_wrong_code_does_not_leak_the_code(self, volunteer_client, claimed):
        code = claimed["pickup_code"]
        wrong = "000000" if code != "000000" else "111111"

        response = volunteer_client.post(
            f"/claims/{claimed['claim_id']}/pickup", json={"pickup_code": wrong}
        )

        assert response.status_code == 422
        assert response.json() == {"detail": "Invalid pickup code"}
        assert code not in response.text

    def test_blank_code_is_rejected(self, volunteer_client, claimed):
        response = volunteer_client.post(
            f"/claims/{claimed['claim_id']}/pickup", json={"pickup_code": "   "}
        )
        assert response.status_code == 422

    def test_deliver_before_pickup_conflicts(self, volunteer_client, claimed):
        response = volunteer_client.post(
            f"/claims/{claimed['claim_id']}/deliver", json={"notes": "early"}
        )
        assert response.status_code == 409
        assert response.json() == {"detail": "Donation must be picked up first"}

    def test_pickup_twice_conflicts(self, volunteer_client, claimed):
        url = f"/claims/{claimed['claim_id']}/pickup"
        body = {"pickup_code": claimed["pickup_code"]}

        assert volunteer_client.post(url, json=body).status_code == 200
        assert volunteer_client.post(url, json=body).status_code == 409

    def test_cancel_flow(self, volunteer_client, other_client, posted, claimed):
        url = f"/claims/{claimed['claim_id']}"

        assert other_client.delete(url).status_code == 403
        assert volunteer_client.delete(url).status_code == 200
        assert volunteer_client.delete("/claims/9999").status_code == 404

        donation = volunteer_client.get(f"/donations/{posted['id']}").json()
        assert donation["status"] == "available"
        assert donation["pickup_code"] is None

        response = other_client.post(f"/donations/{posted['id']}/claim")
        assert response.status_code == 200

    def test_full_delivery(
        self, donor_client, volunteer_client, posted, claimed, donor, volunteer
    ):
        claim_id = claimed["claim_id"]

        response = volunteer_client.post(
            f"/claims/{claim_id}/pickup", json={"pickup_code": claimed["pickup_code"]}
        )
        assert response.status_code == 200
        assert response.json()["claim"]["status"] == "picked_up"
        assert response.json()["claim"]["donation"]["status"] == "picked_up"

        response = volunteer_client.post(
            f"/claims/{claim_id}/deliver", json={"notes": "left at desk"}
        )
        assert response.status_code == 200
        claim = response.json()["claim"]
        assert claim["status"] == "delivered"
        assert claim["notes"] == "left at desk"
        assert claim["donation"]["status"] == "delivered"

        assert donor_client.get("/me").json()["impact_score"] == 5
        assert volunteer_client.get("/me").json()["impact_score"] == 10

        mine = volunteer_client.get("/claims/").json()
        assert [c["id"] for c in mine] == [claim_id]

        board = volunteer_client.get("/users/leaderboard").json()
        assert [entry["id"] for entry in board[:2]] == [volunteer.id, donor.id]

    def test_deliver_without_body(self, volunteer_client, claimed):
        claim_id = claimed["claim_id"]
        volunteer_client.post(
            f"/claims/{claim_id}/pickup", json={"pickup_code": claimed["pickup_code"]}
        )

        response = volunteer_client.post(f"/claims/{claim_id}/deliver")
        assert response.status_code == 200
        assert response.json()["claim"]["notes"] is None

    def test_overlong_notes_rejected(self, volunteer_client, claimed):
        response = volunteer_client.post(
            f"/claims/{claimed['claim_id']}/deliver", json={"notes": "x" * 501}
        )
        assert response.status_code == 422


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class TestNotificationEndpoints:

    def test_donor_inbox(self, donor_client, volunteer_client, claimed):
        assert donor_client.get("/notifications/unread-count").json() == {"count": 1}

        inbox = donor_client.get("/notifications/").json()
        assert len(inbox) == 1
        assert inbox[0]["type"] == "donation_claimed"
        assert inbox[0]["data"]["pickup_code"] == claimed["pickup_code"]

        response = donor_client.post(f"/notifications/{inbox[0]['id']}/read")
        assert response.status_code == 200
        assert response.json()["read_at"] is not None
        assert donor_client.get("/notifications/unread-count").json() == {"count": 0}

    def test_cannot_read_someone_elses_notification(self, donor_client, volunteer_client, claimed):
        notification_id = donor_client.get("/notifications/").json()[0]["id"]

        response = volunteer_client.post(f"/notifications/{notification_id}/read")
        assert response.status_code == 403

    def test_read_all(self, donor_client, volunteer_client, claimed):
        volunteer_client.delete(f"/claims/{claimed['claim_id']}")
        volunteer_client.post(f"/donations/{claimed['claim']['donation_id']}/claim")

        response = donor_client.post("/notifications/read-all")
        assert response.json()["updated"] == 2
        assert donor_client.get("/notifications/unread-count").json() == {"count": 0}
