from datetime import date, timedelta

from models import db, User, Habit, HabitCompletion
from services import habit_service

TODAY = date.today()
DAY = TODAY.isoformat()
YESTERDAY = (TODAY - timedelta(days=1)).isoformat()


def _habit(user, title='Run', is_good=True, start_date=None):
    return habit_service.create_habit(user.id, title, is_good=is_good,
                                      start_date=start_date or date(2026, 1, 1))


def test_requires_login(client):
    response = client.get('/api/habits')
    assert response.status_code == 401
    assert response.json == {'error': 'UNAUTHORIZED'}


def test_api_login(client):
    from werkzeug.security import generate_password_hash
    user = User(username='apiuser', password_hash=generate_password_hash('secret', method='scrypt'))
    db.session.add(user)
    db.session.commit()

    response = client.post('/api/login', json={'username': 'apiuser', 'password': 'wrong'})
    assert response.status_code == 401

    response = client.post('/api/login', json={'username': 'apiuser', 'password': 'secret'})
    assert response.status_code == 200
    assert response.json['user']['id'] == user.id
    assert client.get('/api/habits').status_code == 200


def test_create_habit(auth_client):
    client, user = auth_client
    response = client.post('/api/habits', json={
        'title': 'Drink Water',
        'description': '8 glasses',
        'isGood': True,
        'startDate': '2026-10-01',
    })
    assert response.status_code == 201
    data = response.json
    assert data['title'] == 'Drink Water'
    assert data['isGood'] is True
    assert data['startDate'] == '2026-10-01'
    assert data['userId'] == user.id
    assert db.session.get(Habit, data['id']) is not None


def test_create_habit_invalid(auth_client):
    client, _ = auth_client
    response = client.post('/api/habits', json={'title': '  ', 'isGood': True})
    assert response.status_code == 400
    assert 'Title' in response.json['error']

    response = client.post('/api/habits', data='not json')
    assert response.status_code == 400


def test_list_habits_with_completions(auth_client):
    client, user = auth_client
    habit = _habit(user)
    habit_service.set_completion(habit.id, DAY, True)

    response = client.get('/api/habits')
    assert response.status_code == 200
    assert len(response.json) == 1
    assert response.json[0]['completions'] == {DAY: True}


def test_update_habit(auth_client):
    client, user = auth_client
    habit = _habit(user)
    response = client.patch(f'/api/habits/{habit.id}', json={'title': 'Run 5k', 'startDate': '2030-01-01'})
    assert response.status_code == 200
    assert response.json['title'] == 'Run 5k'
    # start date cannot be changed
    assert response.json['startDate'] == '2026-01-01'


def test_set_completion_upserts(auth_client):
    client, user = auth_client
    habit = _habit(user)

    for _ in range(2):
        response = client.put(f'/api/habits/{habit.id}/completions/{DAY}', json={'completed': True})
        assert response.status_code == 200
        assert response.json == {'habitId': habit.id, 'date': DAY, 'completed': True}

    assert HabitCompletion.query.filter_by(habit_id=habit.id, date=DAY).count() == 1


def test_set_completion_validation(auth_client):
    client, user = auth_client
    habit = _habit(user)
    response = client.put(f'/api/habits/{habit.id}/completions/{DAY}', json={'completed': 'yes'})
    assert response.status_code == 400
    response = client.put(f'/api/habits/{habit.id}/completions/19-10-2026', json={'completed': True})
    assert response.status_code == 400


def test_habit_completions_and_delete_completion(auth_client):
    client, user = auth_client
    habit = _habit(user)
    habit_service.set_completion(habit.id, YESTERDAY, False)

    response = client.get(f'/api/habits/{habit.id}/completions')
    assert response.json == [{'habitId': habit.id, 'date': YESTERDAY, 'completed': False}]

    response = client.delete(f'/api/habits/{habit.id}/completions/{YESTERDAY}')
    assert response.json['deleted'] is True
    assert client.get(f'/api/habits/{habit.id}/completions').json == []


def test_delete_habit(auth_client):
    client, user = auth_client
    habit = _habit(user)
    habit_id = habit.id
    habit_service.set_completion(habit_id, DAY, True)

    response = client.delete(f'/api/habits/{habit_id}')
    assert response.status_code == 200
    assert response.json['status'] == 'success'
    assert db.session.get(Habit, habit_id) is None
    assert HabitCompletion.query.filter_by(habit_id=habit_id).count() == 0

    assert client.delete(f'/api/habits/{habit_id}').status_code == 404


def test_foreign_habit_is_forbidden(auth_client):
    client, _ = auth_client
    other = User(username='other', password_hash='hash')
    db.session.add(other)
    db.session.commit()
    habit = _habit(other)

    assert client.delete(f'/api/habits/{habit.id}').status_code == 403
    assert client.put(f'/api/habits/{habit.id}/completions/{DAY}', json={'completed': True}).status_code == 403
    assert client.get('/api/habits').json == []


def test_completions_for_date(auth_client):
    client, user = auth_client
    habit = _habit(user, title='Read')
    habit_service.set_completion(habit.id, DAY, True)
    habit_service.set_completion(habit.id, YESTERDAY, True)

    response = client.get(f'/api/completions?date={DAY}')
    assert response.json == [{'habitId': habit.id, 'date': DAY, 'completed': True, 'habitTitle': 'Read'}]
    assert len(client.get('/api/completions').json) == 2


def test_streaks(auth_client):
    client, user = auth_client
    today = date.today()
    good = _habit(user, title='Read', start_date=today - timedelta(days=10))
    bad = _habit(user, title='No sugar', is_good=False, start_date=today - timedelta(days=10))
    for i, value in enumerate([True, True, False]):
        habit_service.set_completion(good.id, today - timedelta(days=i), value)
    for i, value in enumerate([False, False, True, False]):
        habit_service.set_completion(bad.id, today - timedelta(days=i), value)

    response = client.get('/api/streaks')
    assert response.status_code == 200
    by_title = {h['title']: h for h in response.json}
    assert (by_title['Read']['currentStreak'], by_title['Read']['longestStreak']) == (2, 2)
    assert (by_title['No sugar']['currentStreak'], by_title['No sugar']['longestStreak']) == (2, 2)


def test_create_habit_rejects_string_polarity(auth_client):
    client, _ = auth_client
    response = client.post('/api/habits', json={'title': 'Smoking', 'isGood': 'false'})
    assert response.status_code == 400
    assert 'isGood' in response.json['error']
    assert Habit.query.count() == 0


def test_set_completion_outside_tracked_days(auth_client):
    client, user = auth_client
    habit = _habit(user, start_date=TODAY)
    tomorrow = (TODAY + timedelta(days=1)).isoformat()

    response = client.put(f'/api/habits/{habit.id}/completions/{YESTERDAY}', json={'completed': True})
    assert response.status_code == 400
    assert 'start date' in response.json['error']
    response = client.put(f'/api/habits/{habit.id}/completions/{tomorrow}', json={'completed': True})
    assert response.status_code == 400
    assert HabitCompletion.query.filter_by(habit_id=habit.id).count() == 0
