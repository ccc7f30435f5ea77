from sqlalchemy.exc import OperationalError

from backend.scheduling import notifications
from backend.scheduling.notifications import notify


def test_notifications_are_private_and_newest_first(client, db, make_user, auth_headers) -> None:
    student = make_user('sam')
    other = make_user('alex')
    notify(db, student.id, 'appointment_booked', 'First', 'one')
    notify(db, student.id, 'appointment_booked', 'Second', 'two')
    notify(db, other.id, 'appointment_booked', 'Not yours', 'three')
    db.commit()

    response = client.get('/notifications', headers=auth_headers(student))

    assert [row['title'] for row in response.json()['notifications']] == ['Second', 'First']


def test_mark_read_updates_unread_count(client, db, make_user, auth_headers) -> None:
    student = make_user('sam')
    notification = notify(db, student.id, 'appointment_outcome', 'Done', 'body', 'appointment', 7)
    notify(db, student.id, 'appointment_booked', 'Booked', 'body')
    db.commit()
    headers = auth_headers(student)

    before = client.get('/notifications/unread-count', headers=headers)
    marked = client.patch(f'/notifications/{notification.id}/read', headers=headers)
    again = client.patch(f'/notifications/{notification.id}/read', headers=headers)
    after = client.get('/notifications/unread-count', headers=headers)
    unread = client.get('/notifications', params={'unreadOnly': 'true'}, headers=headers)

    assert before.json() == {'count': 2}
    assert marked.json() == {'ok': True}
    assert again.status_code == 404
    assert after.json() == {'count': 1}
    assert [row['title'] for row in unread.json()['notifications']] == ['Booked']


def test_cannot_mark_someone_elses_notification(client, db, make_user, auth_headers) -> None:
    student = make_user('sam')
    other = make_user('alex')
    notification = notify(db, other.id, 'appointment_booked', 'Booked', 'body')
    db.commit()

    response = client.patch(f'/notifications/{notification.id}/read', headers=auth_headers(student))

    assert response.status_code == 404


def test_out_of_range_notification_id_is_not_found(client, make_user, auth_headers) -> None:
    student = make_user('sam')

    response = client.patch(f"/notifications/{'9' * 30}/read", headers=auth_headers(student))

    assert response.status_code == 404


def test_storage_failure_is_reported_as_unavailable(client, make_user, auth_headers, monkeypatch) -> None:
    def broken(*args, **kwargs):
        raise OperationalError('SELECT 1', {}, Exception('database is locked'))

    monkeypatch.setattr(notifications, 'unread_count', broken)
    student = make_user('sam')

    response = client.get('/notifications/unread-count', headers=auth_headers(student))

    assert response.status_code == 503
    assert response.json()['detail'].startswith('Database unavailable')
