def test_counselor_replaces_and_reads_availability(client, make_user, auth_headers) -> None:
    counselor = make_user('casey', role='counselor')
    headers = auth_headers(counselor)

    saved = client.put(
        '/availability',
        json={
            'availability': [
                {'day_of_week': 1, 'start_time': '9:00', 'end_time': '12:00'},
                {'day_of_week': 9, 'start_time': '09:00', 'end_time': '12:00'},
                {'day_of_week': 3},
            ]
        },
        headers=headers,
    )
    fetched = client.get('/availability', headers=headers)

    assert saved.status_code == 200
    assert saved.json() == {'ok': True}
    assert fetched.json() == {
        'availability': [{'day_of_week': 1, 'start_time': '09:00', 'end_time': '12:00'}],
    }


def test_students_and_admins_cannot_manage_availability(client, make_user, auth_headers) -> None:
    for user in (make_user('sam', role='student'), make_user('admin', role='admin')):
        headers = auth_headers(user)

        assert client.get('/availability', headers=headers).status_code == 403
        assert client.put('/availability', json={'availability': []}, headers=headers).status_code == 403


def test_availability_body_must_be_a_list(client, make_user, auth_headers) -> None:
    counselor = make_user('casey', role='counselor')

    response = client.put('/availability', json={'availability': 'mondays'}, headers=auth_headers(counselor))

    assert response.status_code == 400
