import re
from datetime import timedelta
from urllib.parse import urlsplit

from booking_backend.models.booking import Booking
from booking_backend.scheduling.errors import StoreError

from factories import add_booking, add_service, add_window, local, parse_instant


def seed_service(session_factory, duration_minutes: int = 30, windows=(('09:00', '10:00'),)):
    with session_factory() as db:
        service = add_service(db, duration_minutes=duration_minutes)
        for start_time, end_time in windows:
            add_window(db, service, 1, start_time, end_time)
        return service


def test_root_reports_health(client) -> None:
    response = client.get('/')

    assert response.status_code == 200
    assert response.json() == {'status': 'Booking API Running'}


def test_list_services_orders_by_name(client, session_factory) -> None:
    with session_factory() as db:
        add_service(db, name='Massage', duration_minutes=60)
        add_service(db, name='Consultation', duration_minutes=30)

    response = client.get('/api/services')

    assert response.status_code == 200
    assert [service['name'] for service in response.json()] == ['Consultation', 'Massage']
    assert response.json()[0]['duration_minutes'] == 30


def test_list_slots_returns_free_slots(client, session_factory) -> None:
    service = seed_service(session_factory)

    response = client.get('/api/slots', params={'service_id': service.id, 'date': '2026-01-05'})

    assert response.status_code == 200
    slots = response.json()['slots']
    assert [parse_instant(slot['start']) for slot in slots] == [local(9, 0), local(9, 30)]
    assert [parse_instant(slot['end']) for slot in slots] == [local(9, 30), local(10, 0)]


def test_list_slots_without_parameters_is_empty(client) -> None:
    assert client.get('/api/slots').json() == {'slots': []}
    assert client.get('/api/slots', params={'service_id': 1}).json() == {'slots': []}


def test_list_slots_for_unknown_service_is_empty(client) -> None:
    response = client.get('/api/slots', params={'service_id': 999, 'date': '2026-01-05'})

    assert response.status_code == 200
    assert response.json() == {'slots': []}


def test_create_booking_returns_cancel_token_and_sends_email(client, session_factory, notifier) -> None:
    service = seed_service(session_factory)

    response = client.post(
        '/api/book',
        json={'service_id': service.id, 'start': '2026-01-05T09:00:00+06:00', 'name': 'Ada', 'email': 'ADA@example.com'},
    )

    assert response.status_code == 201
    body = response.json()
    assert body['status'] == 'confirmed'
    assert body['customer_email'] == 'ada@example.com'
    assert body['cancel_token']
    assert parse_instant(body['starts_at']) == local(9, 0)
    assert parse_instant(body['ends_at']) == local(9, 30)

    assert len(notifier.sent) == 1
    to_address, subject, html_body = notifier.sent[0]
    assert to_address == 'ada@example.com'
    assert subject == f'Booking confirmed: {service.name}'
    assert body['cancel_token'] in html_body


def test_create_booking_ignores_client_end_time(client, session_factory) -> None:
    service = seed_service(session_factory, duration_minutes=45)

    response = client.post(
        '/api/book',
        json={
            'service_id': service.id,
            'start': '2026-01-05T09:00:00+06:00',
            'end': '2026-01-05T12:00:00+06:00',
            'name': 'Ada',
            'email': 'ada@example.com',
        },
    )

    body = response.json()
    assert parse_instant(body['ends_at']) - parse_instant(body['starts_at']) == timedelta(minutes=45)


def test_create_booking_treats_naive_start_as_business_local(client, session_factory) -> None:
    service = seed_service(session_factory)

    response = client.post(
        '/api/book',
        json={'service_id': service.id, 'start': '2026-01-05T09:30:00', 'name': 'Ada', 'email': 'ada@example.com'},
    )

    assert response.status_code == 201
    assert parse_instant(response.json()['starts_at']) == local(9, 30)


def test_second_booking_for_same_slot_conflicts(client, session_factory) -> None:
    service = seed_service(session_factory)
    payload = {'service_id': service.id, 'start': '2026-01-05T14:00:00+06:00', 'name': 'Ada', 'email': 'ada@example.com'}

    first = client.post('/api/book', json=payload)
    second = client.post('/api/book', json={**payload, 'name': 'Grace', 'email': 'grace@example.com'})

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()['detail'] == 'This time is already booked.'


def test_booked_slot_disappears_from_listing(client, session_factory) -> None:
    service = seed_service(session_factory)
    client.post(
        '/api/book',
        json={'service_id': service.id, 'start': '2026-01-05T09:00:00+06:00', 'name': 'Ada', 'email': 'ada@example.com'},
    )

    slots = client.get('/api/slots', params={'service_id': service.id, 'date': '2026-01-05'}).json()['slots']

    assert [parse_instant(slot['start']) for slot in slots] == [local(9, 30)]


def test_create_booking_for_unknown_service_is_not_found(client) -> None:
    response = client.post(
        '/api/book',
        json={'service_id': 999, 'start': '2026-01-05T09:00:00+06:00', 'name': 'Ada', 'email': 'ada@example.com'},
    )

    assert response.status_code == 404
    assert response.json()['detail'] == 'Service not found.'


def test_create_booking_rejects_blank_name(client, session_factory) -> None:
    service = seed_service(session_factory)

    response = client.post(
        '/api/book',
        json={'service_id': service.id, 'start': '2026-01-05T09:00:00+06:00', 'name': '  ', 'email': 'ada@example.com'},
    )

    assert response.status_code == 422


def test_email_failure_does_not_fail_booking(client, session_factory, notifier) -> None:
    notifier.fail = True
    service = seed_service(session_factory)

    response = client.post(
        '/api/book',
        json={'service_id': service.id, 'start': '2026-01-05T09:00:00+06:00', 'name': 'Ada', 'email': 'ada@example.com'},
    )

    assert response.status_code == 201
    with session_factory() as db:
        assert db.query(Booking).count() == 1


def test_cancel_by_token_is_idempotent(client, session_factory) -> None:
    with session_factory() as db:
        service = add_service(db)
        booking = add_booking(db, service, local(9, 0), local(9, 30))

    first = client.get('/api/cancel', params={'token': booking.cancel_token})
    second = client.get('/api/cancel', params={'token': booking.cancel_token})

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()['status'] == 'cancelled'


def test_cancel_link_in_confirmation_email_cancels_booking(client, session_factory, notifier) -> None:
    service = seed_service(session_factory)
    client.post(
        '/api/book',
        json={'service_id': service.id, 'start': '2026-01-05T09:00:00+06:00', 'name': 'Ada', 'email': 'ada@example.com'},
    )

    html_body = notifier.sent[0][2]
    cancel_href = re.search(r'href="([^"]*/cancel\?token=[^"]+)"', html_body).group(1)
    link = urlsplit(cancel_href)

    response = client.get(f'{link.path}?{link.query}')

    assert response.status_code == 200
    assert response.json()['status'] == 'cancelled'


def test_cancel_requires_token(client) -> None:
    response = client.get('/api/cancel')

    assert response.status_code == 400
    assert response.json()['detail'] == 'Missing token.'


def test_cancel_with_unknown_token_is_not_found(client) -> None:
    assert client.get('/api/cancel', params={'token': 'nope'}).status_code == 404


def test_reschedule_moves_booking(client, session_factory) -> None:
    with session_factory() as db:
        service = add_service(db, duration_minutes=30)
        booking = add_booking(db, service, local(9, 0), local(9, 30))

    response = client.post(
        '/api/reschedule',
        json={'token': booking.cancel_token, 'new_start': '2026-01-05T11:00:00+06:00'},
    )

    assert response.status_code == 200
    body = response.json()
    assert body['ok'] is True
    assert body['status'] == 'rescheduled'
    assert parse_instant(body['starts_at']) == local(11, 0)
    assert parse_instant(body['ends_at']) == local(11, 30)


def test_reschedule_into_taken_slot_conflicts(client, session_factory) -> None:
    with session_factory() as db:
        service = add_service(db, duration_minutes=30)
        booking = add_booking(db, service, local(9, 0), local(9, 30))
        add_booking(db, service, local(11, 0), local(11, 30))

    response = client.post(
        '/api/reschedule',
        json={'token': booking.cancel_token, 'new_start': '2026-01-05T11:00:00+06:00'},
    )

    assert response.status_code == 409


def test_reschedule_with_unknown_token_is_not_found(client) -> None:
    response = client.post('/api/reschedule', json={'token': 'nope', 'new_start': '2026-01-05T11:00:00+06:00'})

    assert response.status_code == 404


def test_store_errors_map_to_service_unavailable(client, session_factory, monkeypatch) -> None:
    service = seed_service(session_factory)

    def fail(*_args, **_kwargs):
        raise StoreError('Could not load availability.')

    monkeypatch.setattr('booking_backend.routes.booking_routes.SlotGenerator.generate', fail)

    response = client.get('/api/slots', params={'service_id': service.id, 'date': '2026-01-05'})

    assert response.status_code == 503
