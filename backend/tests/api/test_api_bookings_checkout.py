"""
预订管理 API 测试
覆盖 /bookings 端点：创建、查询、客人列表、删除、退房
"""
from fastapi.testclient import TestClient

from app.models.ontology import BookingInfo, BookingStatus, Room, RoomStatus


def _create(client, headers, customer, rooms, **extra):
    payload = {
        "customer_id": customer.id,
        "check_in": "2026-11-01T14:00:00Z",
        "check_out": "2026-11-03",
        "room_ids": [room.id for room in rooms],
        "adults": 2,
    }
    payload.update(extra)
    return client.post("/bookings", headers=headers, json=payload)


def _check_in(client, headers, booking_id):
    data = client.post("/checkin/initiate", headers=headers, json={"bookingId": booking_id}).json()["data"]
    client.post("/checkin", json={"token": data["token"], "guests": [{"fullName": "Jane Smith"}]})
    return data


class TestCreateBooking:

    def test_create_booking(self, client: TestClient, auth_headers, sample_customer, sample_rooms, outbox):
        response = _create(client, auth_headers, sample_customer, sample_rooms)

        assert response.status_code == 201
        body = response.json()
        assert body["checkin"] is None
        booking = body["booking"]
        assert booking["status"] == "Confirmed"
        assert booking["nights"] == 1
        assert booking["customer"]["full_name"] == "Jane Smith"
        assert {r["status"] for r in booking["rooms"]} == {"Reserved"}
        assert outbox.sent == []

    def test_create_booking_and_send_email(self, client: TestClient, auth_headers, sample_customer,
                                           sample_rooms, outbox, db_session):
        response = _create(client, auth_headers, sample_customer, sample_rooms, send_email=True)

        assert response.status_code == 201
        checkin = response.json()["checkin"]
        assert checkin["email_sent"] is True
        assert db_session.query(BookingInfo).count() == 1
        assert len(outbox.sent) == 1

    def test_invalid_room_is_422(self, client: TestClient, auth_headers, sample_customer):
        response = client.post("/bookings", headers=auth_headers, json={
            "customer_id": sample_customer.id, "check_in": "2026-11-01",
            "check_out": "2026-11-02", "room_ids": [0],
        })
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "validation_error"

    def test_requires_auth(self, client: TestClient, sample_customer, sample_rooms):
        assert _create(client, {}, sample_customer, sample_rooms).status_code in (401, 403)


class TestQueryBookings:

    def test_list_and_filter(self, client: TestClient, auth_headers, sample_booking):
        response = client.get("/bookings", headers=auth_headers)
        assert [b["id"] for b in response.json()] == [sample_booking.id]

        response = client.get("/bookings", headers=auth_headers, params={"status": "Checked-In"})
        assert response.json() == []

    def test_get_booking(self, client: TestClient, auth_headers, sample_booking):
        response = client.get(f"/bookings/{sample_booking.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["reference_code"] == "BK20261020ABC123"
        assert client.get("/bookings/9999", headers=auth_headers).status_code == 404

    def test_guests_after_checkin(self, client: TestClient, auth_headers, sample_booking):
        _check_in(client, auth_headers, sample_booking.id)
        response = client.get(f"/bookings/{sample_booking.id}/guests", headers=auth_headers)
        assert response.status_code == 200
        assert [g["full_name"] for g in response.json()] == ["Jane Smith"]

    def test_delete_requires_manager(self, client: TestClient, auth_headers, manager_auth_headers, sample_booking):
        assert client.delete(f"/bookings/{sample_booking.id}", headers=auth_headers).status_code == 403
        assert client.delete(f"/bookings/{sample_booking.id}", headers=manager_auth_headers).status_code == 200
        assert client.get(f"/bookings/{sample_booking.id}", headers=auth_headers).status_code == 404


class TestCheckout:

    def test_checkout_flow(self, client: TestClient, auth_headers, sample_booking, db_session):
        data = _check_in(client, auth_headers, sample_booking.id)

        response = client.post(f"/bookings/{sample_booking.id}/checkout", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == BookingStatus.CHECKED_OUT.value
        assert {room.status for room in db_session.query(Room).all()} == {RoomStatus.AVAILABLE.value}

        verify = client.get("/checkin/verify", params={"token": data["token"]})
        assert verify.status_code == 410
        assert verify.json()["detail"]["code"] == "booking_checked_out"

        validate = client.post("/checkin/validate", json={"checkinCode": data["checkin_code"], "query": "smith"})
        assert validate.status_code == 410

    def test_checkout_not_checked_in_is_409(self, client: TestClient, auth_headers, sample_booking):
        response = client.post(f"/bookings/{sample_booking.id}/checkout", headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "not_checked_in"

    def test_checkout_unknown_is_404(self, client: TestClient, auth_headers):
        assert client.post("/bookings/9999/checkout", headers=auth_headers).status_code == 404
