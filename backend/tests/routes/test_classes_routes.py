"""API tests for /api/v1/classes and /api/v1/class-instances."""

from datetime import datetime, timedelta, timezone

import pytest

from tests.utils.class_builders import auth_headers, template_payload


def create_class(client, actor, **overrides):
    response = client.post(
        "/api/v1/classes", json=template_payload(**overrides), headers=auth_headers(actor)
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_create_and_fetch_class(client, trainer, member):
    created = create_class(client, trainer)

    assert created["trainer_id"] == trainer.user_id
    assert created["price"] == 20.0
    assert created["status"] == "active"
    assert created["cancellation_policy"] == {"hours_before_class": 24.0, "refund_percentage": 100}

    response = client.get(f"/api/v1/classes/{created['id']}", headers=auth_headers(member))
    assert response.status_code == 200
    assert response.json()["name"] == "Morning Flow"


def test_requests_without_identity_are_rejected(client):
    response = client.get("/api/v1/classes")

    assert response.status_code == 401
    assert response.json()["code"] == "MISSING_AUTH_CONTEXT"


def test_unknown_role_is_rejected(client):
    response = client.get(
        "/api/v1/classes", headers={"X-User-Id": "someone", "X-User-Role": "owner"}
    )

    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_ROLE"


def test_member_cannot_create_class(client, member):
    response = client.post(
        "/api/v1/classes", json=template_payload(), headers=auth_headers(member)
    )

    assert response.status_code == 403
    body = response.json()
    assert body["code"] == "FORBIDDEN"
    assert body["title"] == "Forbidden"


def test_out_of_range_capacity_is_a_domain_error(client, trainer):
    response = client.post(
        "/api/v1/classes", json=template_payload(max_capacity=0), headers=auth_headers(trainer)
    )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "INVALID_CLASS"
    assert body["instance"] == "/api/v1/classes"


def test_malformed_body_is_a_validation_problem(client, trainer):
    response = client.post(
        "/api/v1/classes",
        json=template_payload(unexpected_field=True),
        headers=auth_headers(trainer),
    )

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert body["errors"]


@pytest.mark.parametrize("price", ["abc", "NaN", "Infinity", ""])
def test_non_numeric_price_is_a_validation_problem(client, trainer, price):
    response = client.post(
        "/api/v1/classes", json=template_payload(price=price), headers=auth_headers(trainer)
    )

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert body["errors"][0]["loc"][-1] == "price"


@pytest.mark.parametrize("hours", [-1, 8761, 1e11])
def test_cancellation_window_out_of_range_is_rejected(client, trainer, hours):
    response = client.post(
        "/api/v1/classes",
        json=template_payload(cancellation_policy={"hours_before_class": hours, "refund_percentage": 100}),
        headers=auth_headers(trainer),
    )

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_unknown_class_is_404(client, member):
    response = client.get("/api/v1/classes/01HZZZZZZZZZZZZZZZZZZZZZZZ", headers=auth_headers(member))

    assert response.status_code == 404
    assert response.json()["code"] == "CLASS_NOT_FOUND"


def test_list_hides_cancelled_for_members_only(client, trainer, member):
    kept = create_class(client, trainer, name="Spin Blast", type="spinning")
    dropped = create_class(client, trainer, name="Old Pilates", type="pilates")
    response = client.put(
        f"/api/v1/classes/{dropped['id']}/status",
        json={"status": "cancelled"},
        headers=auth_headers(trainer),
    )
    assert response.status_code == 200

    member_view = client.get(
        "/api/v1/classes", params={"include_hidden": True}, headers=auth_headers(member)
    ).json()
    assert [c["id"] for c in member_view["items"]] == [kept["id"]]

    staff_view = client.get(
        "/api/v1/classes", params={"include_hidden": True}, headers=auth_headers(trainer)
    ).json()
    assert staff_view["total"] == 2
    assert staff_view["has_next"] is False


def test_partial_update(client, trainer, other_trainer):
    created = create_class(client, trainer)

    response = client.patch(
        f"/api/v1/classes/{created['id']}",
        json={"max_capacity": 15},
        headers=auth_headers(trainer),
    )
    assert response.status_code == 200
    assert response.json()["max_capacity"] == 15
    assert response.json()["name"] == created["name"]

    response = client.patch(
        f"/api/v1/classes/{created['id']}",
        json={"name": "Taken"},
        headers=auth_headers(other_trainer),
    )
    assert response.status_code == 403


def test_generate_and_list_instances(client, trainer, member):
    created = create_class(client, trainer)
    body = {"start_date": "2030-01-06", "end_date": "2030-01-12"}

    response = client.post(
        f"/api/v1/classes/{created['id']}/instances/generate",
        json=body,
        headers=auth_headers(trainer),
    )
    assert response.status_code == 201
    instances = response.json()
    assert len(instances) == 2
    assert all(i["available_spots"] == 10 for i in instances)

    again = client.post(
        f"/api/v1/classes/{created['id']}/instances/generate",
        json=body,
        headers=auth_headers(trainer),
    )
    assert again.json() == []

    listing = client.get(
        f"/api/v1/classes/{created['id']}/instances", headers=auth_headers(member)
    ).json()
    assert listing["total"] == 2


def test_generate_rejects_reversed_range(client, trainer):
    created = create_class(client, trainer)

    response = client.post(
        f"/api/v1/classes/{created['id']}/instances/generate",
        json={"start_date": "2030-01-12", "end_date": "2030-01-06"},
        headers=auth_headers(trainer),
    )

    assert response.status_code == 422


def test_instance_lifecycle_and_attendance(client, trainer, member, admin):
    created = create_class(client, trainer)
    start = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(hours=2)
    response = client.post(
        "/api/v1/class-instances",
        json={
            "class_id": created["id"],
            "start_time": start.isoformat(),
            "end_time": (start + timedelta(hours=1)).isoformat(),
        },
        headers=auth_headers(trainer),
    )
    assert response.status_code == 201, response.text
    instance_id = response.json()["id"]

    booked = client.post(
        "/api/v1/bookings",
        json={"class_instance_id": instance_id},
        headers=auth_headers(member),
    )
    assert booked.status_code == 201

    check_in = client.post(
        f"/api/v1/class-instances/{instance_id}/check-in", headers=auth_headers(member)
    )
    assert check_in.status_code == 200
    assert check_in.json()["user_id"] == member.user_id

    bad_transition = client.put(
        f"/api/v1/class-instances/{instance_id}/status",
        json={"status": "completed"},
        headers=auth_headers(trainer),
    )
    assert bad_transition.status_code == 422
    assert bad_transition.json()["code"] == "INVALID_STATE_TRANSITION"

    reconcile = client.get(
        f"/api/v1/class-instances/{instance_id}/reconcile", headers=auth_headers(admin)
    )
    assert reconcile.status_code == 200
    assert reconcile.json()["drift"] == 0

    forbidden = client.get(
        f"/api/v1/class-instances/{instance_id}/reconcile", headers=auth_headers(trainer)
    )
    assert forbidden.status_code == 403
