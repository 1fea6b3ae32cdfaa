from sqlmodel import Session, select

from arena import models
from arena.database import engine


def _observe(client, headers, athlete_id, area='NUTRITION', content='Needs more protein'):
    r = client.post(f'/athletes/{athlete_id}/areas/{area}/observations', json={'content': content}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()['observation_id']


def test_thread_is_created_once_per_athlete_and_area(client, signup, athlete_id):
    headers = signup(email='nutri@arenapark.com', name='Nutri', areas=['NUTRITION'])
    assert client.get(f'/athletes/{athlete_id}/areas/NUTRITION/observations', headers=headers).json() == []

    _observe(client, headers, athlete_id, content='first')
    _observe(client, headers, athlete_id, content='second')

    listed = client.get(f'/athletes/{athlete_id}/areas/NUTRITION/observations', headers=headers).json()
    assert [o['content'] for o in listed] == ['first', 'second']
    assert listed[0]['author']['name'] == 'Nutri'

    with Session(engine) as session:
        assert len(session.exec(select(models.Thread)).all()) == 1


def test_observation_for_unknown_area_or_athlete(client, signup, athlete_id):
    headers = signup(email='nutri@arenapark.com', areas=['NUTRITION'])
    # area name outside the closed set
    r = client.post(f'/athletes/{athlete_id}/areas/COOKING/observations', json={'content': 'x'}, headers=headers)
    assert r.status_code == 400
    # valid name but no Area row exists
    r = client.post(f'/athletes/{athlete_id}/areas/NURSING/observations', json={'content': 'x'}, headers=headers)
    assert r.status_code == 404
    assert r.json()['message'] == 'Area not found'
    r = client.post('/athletes/00000000-0000-0000-0000-000000000000/areas/NUTRITION/observations', json={'content': 'x'}, headers=headers)
    assert r.status_code == 404


def test_only_author_updates_observation(client, signup, athlete_id):
    author = signup(email='nutri@arenapark.com', areas=['NUTRITION'])
    other = signup(email='psy@arenapark.com', role='MEMBER', areas=['PSYCHOLOGY'])
    obs_id = _observe(client, author, athlete_id)
    url = f'/athletes/{athlete_id}/areas/NUTRITION/observations/{obs_id}'

    r = client.put(url, json={'content': 'hijacked'}, headers=other)
    assert r.status_code == 401

    r = client.put(url, json={'content': 'Needs more protein and iron'}, headers=author)
    assert r.status_code == 204
    listed = client.get(f'/athletes/{athlete_id}/areas/NUTRITION/observations', headers=author).json()
    assert listed[0]['content'] == 'Needs more protein and iron'


def test_deleting_observation_as_non_author_is_unauthorized(client, signup, athlete_id):
    author = signup(email='nutri@arenapark.com', areas=['NUTRITION'])
    other = signup(email='psy@arenapark.com', role='MEMBER')
    obs_id = _observe(client, author, athlete_id)
    url = f'/athletes/{athlete_id}/areas/NUTRITION/observations/{obs_id}'

    assert client.delete(url, headers=other).status_code == 401
    assert client.delete(url, headers=author).status_code == 204
    assert client.delete(url, headers=author).status_code == 404
    assert client.get(f'/athletes/{athlete_id}/areas/NUTRITION/observations', headers=author).json() == []


def test_observation_must_belong_to_the_thread(client, signup, athlete_id):
    headers = signup(email='multi@arenapark.com', areas=['NUTRITION', 'PSYCHOLOGY'])
    nutrition_obs = _observe(client, headers, athlete_id, area='NUTRITION')

    # no PSYCHOLOGY thread yet
    r = client.delete(f'/athletes/{athlete_id}/areas/PSYCHOLOGY/observations/{nutrition_obs}', headers=headers)
    assert r.status_code == 404
    assert r.json()['message'] == 'Thread not found for the specified area and athlete'

    _observe(client, headers, athlete_id, area='PSYCHOLOGY')
    r = client.put(
        f'/athletes/{athlete_id}/areas/PSYCHOLOGY/observations/{nutrition_obs}',
        json={'content': 'moved'}, headers=headers,
    )
    assert r.status_code == 404
    assert r.json()['message'] == 'Observation not found for the specified thread and athlete'


def test_empty_content_rejected(client, signup, athlete_id):
    headers = signup(email='nutri@arenapark.com', areas=['NUTRITION'])
    r = client.post(f'/athletes/{athlete_id}/areas/NUTRITION/observations', json={'content': ''}, headers=headers)
    assert r.status_code == 400
