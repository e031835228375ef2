from studio.models import Booking, BookingStatus, UserPackage, UserRole

TOMORROW = "2026-03-03"


def book(client, headers, package_id, time="10:00", date=TOMORROW):
    return client.post(
        "/api/bookings",
        json={"date": date, "time": time, "packageId": package_id},
        headers=headers,
    )


def test_create_booking(client, make_user, make_package, auth_headers, calendar, notifier, used_sessions):
    user = make_user(name="Giulia")
    package = make_package([user], total_sessions=5)

    response = book(client, auth_headers(user), package.id, time="9:30")

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == BookingStatus.CONFIRMED
    assert data["date"] == TOMORROW
    assert data["time"] == "09:30"
    assert data["googleEventId"] == "evt-1"
    assert data["reminderSent"] is False
    assert used_sessions(package.id, user.id) == 1

    assert calendar.created[0]["summary"] == "Session Giulia"
    assert len(notifier.sent) == 1
    assert notifier.sent[0]["type"] == "booking_confirmation"
    assert notifier.sent[0]["booking_id"] == data["id"]


def test_create_booking_requires_authentication(client):
    response = client.post("/api/bookings", json={"date": TOMORROW, "time": "10:00", "packageId": "x"})
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


def test_create_booking_rejects_invalid_token(client):
    response = client.post(
        "/api/bookings",
        json={"date": TOMORROW, "time": "10:00", "packageId": "x"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


def test_invalid_time_format(client, make_user, make_package, auth_headers):
    user = make_user()
    package = make_package([user])

    response = book(client, auth_headers(user), package.id, time="25:00")

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid time format. Expected HH:MM"


def test_time_outside_opening_hours(client, make_user, make_package, auth_headers):
    user = make_user()
    package = make_package([user])

    for time in ["07:30", "20:00"]:
        response = book(client, auth_headers(user), package.id, time=time)
        assert response.status_code == 400
        assert "between 08:00 and 20:00" in response.json()["error"]


def test_invalid_date(client, make_user, make_package, auth_headers):
    user = make_user()
    package = make_package([user])

    response = book(client, auth_headers(user), package.id, date="03/03/2026")

    assert response.status_code == 400


def test_date_in_the_past(client, make_user, make_package, auth_headers):
    user = make_user()
    package = make_package([user])

    response = book(client, auth_headers(user), package.id, date="2026-03-01")

    assert response.status_code == 400
    assert response.json()["error"] == "Cannot book a date in the past"


def test_slot_already_started_today(client, make_user, make_package, auth_headers, clock):
    user = make_user()
    package = make_package([user])

    # The clock is at 09:00 today
    response = book(client, auth_headers(user), package.id, date="2026-03-02", time="09:00")
    assert response.status_code == 400
    assert response.json()["error"] == "Booking time must be in the future"

    response = book(client, auth_headers(user), package.id, date="2026-03-02", time="09:30")
    assert response.status_code == 201


def test_missing_package_id(client, make_user, auth_headers):
    user = make_user()

    response = client.post(
        "/api/bookings", json={"date": TOMORROW, "time": "10:00"}, headers=auth_headers(user)
    )

    assert response.status_code == 400
    assert "packageId" in response.json()["error"]


def test_unknown_package(client, make_user, auth_headers, calendar):
    user = make_user()

    response = book(client, auth_headers(user), "does-not-exist")

    assert response.status_code == 404
    assert response.json()["error"] == "Package not found or not active"
    assert calendar.created == []


def test_inactive_package(client, make_user, make_package, auth_headers):
    user = make_user()
    package = make_package([user], is_active=False)

    response = book(client, auth_headers(user), package.id)

    assert response.status_code == 404


def test_package_of_another_user(client, make_user, make_package, auth_headers):
    owner = make_user()
    intruder = make_user()
    package = make_package([owner])

    response = book(client, auth_headers(intruder), package.id)

    assert response.status_code == 403


def test_exhausted_package(client, make_user, make_package, auth_headers, calendar, fetch):
    user = make_user()
    package = make_package([user], total_sessions=4, used_sessions=4)

    response = book(client, auth_headers(user), package.id)

    assert response.status_code == 409
    assert response.json()["error"] == "No sessions remaining in this package"
    assert calendar.created == []
    assert fetch(Booking) == []


def test_overlapping_booking_is_rejected(
    client, make_user, make_package, auth_headers, calendar, used_sessions
):
    first = make_user()
    second = make_user()
    package_a = make_package([first])
    package_b = make_package([second])

    assert book(client, auth_headers(first), package_a.id, time="10:00").status_code == 201

    response = book(client, auth_headers(second), package_b.id, time="10:30")
    assert response.status_code == 409
    assert response.json()["error"] == "This time slot is no longer available"
    assert used_sessions(package_b.id, second.id) == 0

    # The event created before the transaction failed is cleaned up
    assert calendar.deleted == ["evt-2"]

    assert book(client, auth_headers(second), package_b.id, time="11:00").status_code == 201


def test_longer_sessions_block_more_slots(client, make_user, make_package, auth_headers):
    first = make_user()
    second = make_user()
    long_package = make_package([first], duration_minutes=90)
    package = make_package([second])

    assert book(client, auth_headers(first), long_package.id, time="10:00").status_code == 201

    assert book(client, auth_headers(second), package.id, time="11:00").status_code == 409
    assert book(client, auth_headers(second), package.id, time="09:00").status_code == 201


def test_calendar_failure_does_not_block_booking(
    client, make_user, make_package, auth_headers, calendar
):
    user = make_user()
    package = make_package([user])
    calendar.fail_create = True

    response = book(client, auth_headers(user), package.id)

    assert response.status_code == 201
    assert response.json()["googleEventId"] is None


def test_notification_failure_does_not_block_booking(
    client, make_user, make_package, auth_headers, notifier
):
    user = make_user()
    package = make_package([user], total_sessions=5)

    notifier.explode = True
    assert book(client, auth_headers(user), package.id, time="10:00").status_code == 201

    notifier.explode = False
    notifier.fail = True
    assert book(client, auth_headers(user), package.id, time="12:00").status_code == 201


def test_no_confirmation_without_whatsapp_consent(
    client, make_user, make_package, auth_headers, notifier
):
    opted_out = make_user(whatsapp_notifications=False)
    no_phone = make_user(phone=None)
    package_a = make_package([opted_out])
    package_b = make_package([no_phone])

    assert book(client, auth_headers(opted_out), package_a.id, time="10:00").status_code == 201
    assert book(client, auth_headers(no_phone), package_b.id, time="12:00").status_code == 201
    assert notifier.sent == []


def test_group_package_charges_every_holder(
    client, make_user, make_package, auth_headers, used_sessions
):
    first = make_user()
    second = make_user()
    package = make_package([first, second], total_sessions=8)

    response = book(client, auth_headers(first), package.id)

    assert response.status_code == 201
    assert used_sessions(package.id, first.id) == 1
    assert used_sessions(package.id, second.id) == 1


def test_group_package_needs_sessions_for_every_holder(
    client, make_user, make_package, auth_headers, db, fetch
):
    first = make_user()
    second = make_user()
    package = make_package([first, second], total_sessions=8)
    (partner_holding,) = fetch(UserPackage, package_id=package.id, user_id=second.id)
    partner_holding.used_sessions = 8
    db.add(partner_holding)
    db.commit()

    response = book(client, auth_headers(first), package.id)

    assert response.status_code == 409
    assert response.json()["error"] == "One or more athletes in this package have no sessions left"


def test_rate_limit_applies_before_validation(client, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)

    for _ in range(10):
        response = client.post("/api/bookings", json={"time": "bad"}, headers=headers)
        assert response.status_code == 400

    response = client.post("/api/bookings", json={"time": "bad"}, headers=headers)

    assert response.status_code == 429
    assert response.headers["X-RateLimit-Limit"] == "10"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert "X-RateLimit-Reset" in response.headers
    body = response.json()
    assert body["error"]
    assert 0 < body["retryAfter"] <= 60


def test_rate_limit_is_per_user(client, make_user, make_package, auth_headers, limiter):
    noisy = make_user()
    quiet = make_user()
    package = make_package([quiet])
    for _ in range(11):
        client.post("/api/bookings", json={}, headers=auth_headers(noisy))

    response = book(client, auth_headers(quiet), package.id)

    assert response.status_code == 201


def test_list_my_bookings_includes_group_partner(client, make_user, make_package, auth_headers):
    first = make_user(name="Anna")
    second = make_user(name="Marco")
    outsider = make_user()
    group = make_package([first, second])
    other = make_package([outsider])

    assert book(client, auth_headers(first), group.id, time="10:00").status_code == 201
    assert book(client, auth_headers(outsider), other.id, time="12:00").status_code == 201

    response = client.get("/api/bookings", headers=auth_headers(second))

    assert response.status_code == 200
    bookings = response.json()
    assert len(bookings) == 1
    assert bookings[0]["user"]["name"] == "Anna"
    assert bookings[0]["package"]["durationMinutes"] == 60


def test_cancel_booking_releases_session(
    client, make_user, make_package, auth_headers, calendar, used_sessions, notifier
):
    user = make_user()
    package = make_package([user])
    booking_id = book(client, auth_headers(user), package.id).json()["id"]
    notifier.sent.clear()

    response = client.delete(f"/api/bookings/{booking_id}", headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["booking"]["status"] == BookingStatus.CANCELLED
    assert used_sessions(package.id, user.id) == 0
    assert calendar.deleted == ["evt-1"]
    # Clients cancelling their own booking get no message
    assert notifier.sent == []

    # The slot is free again
    assert book(client, auth_headers(user), package.id).status_code == 201


def test_cancel_twice(client, make_user, make_package, auth_headers):
    user = make_user()
    package = make_package([user])
    booking_id = book(client, auth_headers(user), package.id).json()["id"]

    assert client.delete(f"/api/bookings/{booking_id}", headers=auth_headers(user)).status_code == 200
    assert client.delete(f"/api/bookings/{booking_id}", headers=auth_headers(user)).status_code == 404


def test_cancel_requires_notice(client, make_user, make_package, auth_headers, clock):
    user = make_user()
    package = make_package([user])
    booking_id = book(client, auth_headers(user), package.id, time="11:00").json()["id"]

    # Tomorrow at 09:00, two hours before the session
    clock.advance(days=1)

    response = client.delete(f"/api/bookings/{booking_id}", headers=auth_headers(user))

    assert response.status_code == 400
    assert "3 hours" in response.json()["error"]


def test_cancel_by_non_holder(client, make_user, make_package, auth_headers):
    owner = make_user()
    other = make_user()
    package = make_package([owner])
    booking_id = book(client, auth_headers(owner), package.id).json()["id"]

    response = client.delete(f"/api/bookings/{booking_id}", headers=auth_headers(other))

    assert response.status_code == 403


def test_admin_cancel_notifies_and_releases_group(
    client, make_user, make_package, auth_headers, clock, notifier, used_sessions
):
    admin = make_user(role=UserRole.ADMIN)
    first = make_user()
    second = make_user()
    package = make_package([first, second])
    booking_id = book(client, auth_headers(first), package.id, time="10:00").json()["id"]
    notifier.sent.clear()

    # Admins may cancel inside the notice period
    clock.advance(days=1)
    response = client.delete(f"/api/bookings/{booking_id}", headers=auth_headers(admin))

    assert response.status_code == 200
    assert used_sessions(package.id, first.id) == 0
    assert used_sessions(package.id, second.id) == 0
    assert [m["type"] for m in notifier.sent] == ["booking_cancellation"]


def test_admin_bookings(client, make_user, make_package, auth_headers):
    admin = make_user(role=UserRole.ADMIN)
    user = make_user()
    package = make_package([user])
    book(client, auth_headers(user), package.id, date="2026-03-03")
    book(client, auth_headers(user), package.id, date="2026-03-05")

    assert client.get("/api/admin/bookings", headers=auth_headers(user)).status_code == 403

    response = client.get("/api/admin/bookings", headers=auth_headers(admin))
    assert len(response.json()) == 2

    response = client.get(
        "/api/admin/bookings",
        params={"startDate": "2026-03-04", "endDate": "2026-03-31"},
        headers=auth_headers(admin),
    )
    assert [b["date"] for b in response.json()] == ["2026-03-05"]

    response = client.get(
        "/api/admin/bookings", params={"startDate": "soon"}, headers=auth_headers(admin)
    )
    assert response.status_code == 400
