import pytest

from backend.models.notification import Notification


@pytest.fixture
def people(make_user):
    return {
        'student': make_user('sam', role='student'),
        'counselor': make_user('casey', role='counselor', provider_type='counselor'),
        'other_counselor': make_user('morgan', role='counselor', provider_type='counselor'),
        'admin': make_user('admin', role='admin'),
    }


def _book(client, headers, **body):
    payload = {'scheduledAt': '2026-01-05T09:00:00'}
    payload.update(body)
    return client.post('/appointments', json=payload, headers=headers)


def test_requests_without_token_are_unauthorized(client) -> None:
    response = client.get('/appointments')

    assert response.status_code == 401


def test_requests_with_a_bad_token_are_unauthorized(client) -> None:
    response = client.get('/appointments', headers={'Authorization': 'Bearer not-a-jwt'})

    assert response.status_code == 401


def test_student_books_and_lists_own_appointment(client, people, auth_headers) -> None:
    headers = auth_headers(people['student'])

    created = _book(client, headers, type='counseling', assignedTo=people['counselor'].id)
    listed = client.get('/appointments', headers=headers)

    assert created.status_code == 201
    appointment = created.json()['appointment']
    assert appointment['status'] == 'scheduled'
    assert appointment['scheduled_at'] == '2026-01-05T09:00:00'
    assert appointment['assigned_to_username'] == 'casey'
    assert [row['id'] for row in listed.json()['appointments']] == [appointment['id']]


def test_create_requires_scheduled_at(client, people, auth_headers) -> None:
    response = client.post('/appointments', json={}, headers=auth_headers(people['student']))

    assert response.status_code == 400
    assert response.json()['detail'] == 'scheduledAt (ISO datetime string) required.'


def test_counselor_create_for_missing_student_is_not_found(client, people, auth_headers) -> None:
    response = _book(client, auth_headers(people['counselor']), studentId=424242)

    assert response.status_code == 404


def test_admin_is_excluded_from_appointments(client, people, auth_headers) -> None:
    headers = auth_headers(people['admin'])

    assert _book(client, headers, studentId=people['student'].id).status_code == 403
    assert client.get('/appointments', headers=headers).status_code == 403
    assert client.patch('/appointments/1', json={'status': 'completed'}, headers=headers).status_code == 403
    assert client.delete('/appointments/1', headers=headers).status_code == 403


def test_counselor_claims_completes_and_student_is_notified(client, people, auth_headers, db) -> None:
    student_headers = auth_headers(people['student'])
    counselor_headers = auth_headers(people['counselor'])
    appointment_id = _book(client, student_headers).json()['appointment']['id']

    claimed = client.patch(
        f'/appointments/{appointment_id}',
        json={'assigned_to': people['counselor'].id},
        headers=counselor_headers,
    )
    completed = client.patch(
        f'/appointments/{appointment_id}',
        json={'status': 'completed', 'counselor_report': 'Good progress.'},
        headers=counselor_headers,
    )

    assert claimed.status_code == 200
    assert claimed.json()['appointment']['assigned_to'] == people['counselor'].id
    assert completed.status_code == 200
    assert completed.json()['appointment']['counselor_report'] == 'Good progress.'

    outcome = db.query(Notification).filter(Notification.type == 'appointment_outcome').one()
    assert outcome.user_id == people['student'].id
    assert 'Report: Good progress.' in outcome.body


def test_other_counselor_cannot_patch_or_delete(client, people, auth_headers) -> None:
    appointment_id = _book(
        client,
        auth_headers(people['student']),
        assignedTo=people['counselor'].id,
    ).json()['appointment']['id']
    headers = auth_headers(people['other_counselor'])

    patched = client.patch(f'/appointments/{appointment_id}', json={'status': 'no_show'}, headers=headers)
    deleted = client.delete(f'/appointments/{appointment_id}', headers=headers)

    assert patched.status_code == 403
    assert deleted.status_code == 403


def test_patch_unknown_appointment_is_not_found(client, people, auth_headers) -> None:
    response = client.patch('/appointments/999', json={'status': 'completed'}, headers=auth_headers(people['counselor']))

    assert response.status_code == 404


def test_patch_with_non_numeric_id_is_rejected(client, people, auth_headers) -> None:
    response = client.patch('/appointments/abc', json={}, headers=auth_headers(people['counselor']))

    assert response.status_code == 400


def test_delete_returns_no_content_and_removes_from_listing(client, people, auth_headers) -> None:
    counselor_headers = auth_headers(people['counselor'])
    appointment_id = _book(
        client,
        counselor_headers,
        studentId=people['student'].id,
        assignedTo=people['counselor'].id,
    ).json()['appointment']['id']

    deleted = client.delete(f'/appointments/{appointment_id}', headers=counselor_headers)
    listed = client.get('/appointments', headers=auth_headers(people['student']))

    assert deleted.status_code == 204
    assert listed.json() == {'appointments': []}


def test_double_booking_returns_conflict(client, people, auth_headers, make_user) -> None:
    other_student = make_user('alex', role='student')
    _book(client, auth_headers(people['student']), assignedTo=people['counselor'].id)

    response = _book(client, auth_headers(other_student), assignedTo=people['counselor'].id)

    assert response.status_code == 409


def test_out_of_range_ids_are_not_found(client, people, auth_headers) -> None:
    headers = auth_headers(people['counselor'])
    huge_id = '9' * 30

    created = _book(client, headers, studentId=huge_id)
    patched = client.patch(f'/appointments/{huge_id}', json={'status': 'completed'}, headers=headers)
    deleted = client.delete(f'/appointments/{huge_id}', headers=headers)
    listed = client.get('/appointments', params={'studentId': huge_id}, headers=headers)

    assert created.status_code == 404
    assert patched.status_code == 404
    assert deleted.status_code == 404
    assert listed.json() == {'appointments': []}


def test_malformed_body_is_a_bad_request(client, people, auth_headers) -> None:
    response = client.patch(
        '/appointments/1',
        json={'assigned_to': 'someone'},
        headers=auth_headers(people['counselor']),
    )

    assert response.status_code == 400
    assert response.json()['detail'][0]['loc'] == ['body', 'assigned_to']


def test_empty_patch_leaves_a_finished_appointment_alone(client, people, auth_headers) -> None:
    counselor_headers = auth_headers(people['counselor'])
    appointment_id = _book(
        client,
        auth_headers(people['student']),
        assignedTo=people['counselor'].id,
    ).json()['appointment']['id']
    client.patch(f'/appointments/{appointment_id}', json={'status': 'no_show'}, headers=counselor_headers)

    response = client.patch(f'/appointments/{appointment_id}', json={}, headers=auth_headers(people['student']))

    assert response.status_code == 200
    assert response.json()['appointment']['status'] == 'no_show'
