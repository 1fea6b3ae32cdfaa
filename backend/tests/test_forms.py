from sqlmodel import Session, select

from arena import models
from arena.database import engine

FORM = {
    'slug': 'anamnesis',
    'title': 'Anamnesis',
    'description': 'Initial questionnaire',
    'sections': [
        {
            'title': 'Health',
            'questions': [
                {'title': 'Medication', 'type': 'TEXT'},
                {'title': 'Allergies', 'type': 'MULTIPLE_CHOICE', 'options': ['Food', 'Pollen', 'None']},
            ],
        },
        {
            'title': 'Routine',
            'questions': [
                {'title': 'Sessions per week', 'type': 'SINGLE_CHOICE', 'options': ['1-2', '3-4', '5+']},
            ],
        },
    ],
}


def _create_form(client, headers):
    r = client.post('/forms', json=FORM, headers=headers)
    assert r.status_code == 201, r.text
    form = client.get('/forms/anamnesis', headers=headers).json()
    return [q['id'] for s in form['sections'] for q in s['questions']]


def test_create_and_read_form(client, signup):
    headers = signup()
    medication, allergies, sessions = _create_form(client, headers)
    form = client.get('/forms/anamnesis', headers=headers).json()
    assert [s['title'] for s in form['sections']] == ['Health', 'Routine']
    assert [q['title'] for q in form['sections'][0]['questions']] == ['Medication', 'Allergies']
    assert form['sections'][0]['questions'][1]['options'] == ['Food', 'Pollen', 'None']
    assert client.get('/forms', headers=headers).json() == [{'id': form['id'], 'slug': 'anamnesis', 'title': 'Anamnesis'}]

    assert client.post('/forms', json=FORM, headers=headers).status_code == 400
    assert client.get('/forms/unknown', headers=headers).status_code == 404


def test_only_admin_creates_forms(client, signup):
    headers = signup(email='staff@arenapark.com', role='MEMBER')
    assert client.post('/forms', json=FORM, headers=headers).status_code == 401


def test_assign_form_is_idempotent(client, signup, athlete_id):
    headers = signup()
    _create_form(client, headers)
    first = client.post(f'/athletes/{athlete_id}/forms/anamnesis', headers=headers)
    second = client.post(f'/athletes/{athlete_id}/forms/anamnesis', headers=headers)
    assert first.status_code == 201
    assert first.json() == second.json()
    assert client.post(f'/athletes/{athlete_id}/forms/unknown', headers=headers).status_code == 404
    listed = client.get(f'/athletes/{athlete_id}/forms', headers=headers).json()
    assert [f['slug'] for f in listed] == ['anamnesis']


def test_answers_for_unassigned_form_are_not_found(client, signup, athlete_id):
    headers = signup()
    medication, _, _ = _create_form(client, headers)
    url = f'/athletes/{athlete_id}/forms/anamnesis/answers'
    assert client.get(url, headers=headers).status_code == 404
    r = client.put(url, json={'questions': [{'id': medication, 'answer': 'none'}]}, headers=headers)
    assert r.status_code == 404
    assert r.json()['message'] == 'Form not found for athlete'


def test_update_answers_merges_per_question(client, signup, athlete_id):
    headers = signup()
    medication, allergies, sessions = _create_form(client, headers)
    client.post(f'/athletes/{athlete_id}/forms/anamnesis', headers=headers)
    url = f'/athletes/{athlete_id}/forms/anamnesis/answers'

    r = client.put(url, json={'questions': [
        {'id': medication, 'answer': 'Vitamin D', 'observation': 'prescribed in March'},
        {'id': allergies, 'answer': ['Food', 'Pollen']},
    ]}, headers=headers)
    assert r.status_code == 204

    # ids may arrive as strings; the later write wins for that question only
    r = client.put(url, json={'questions': [
        {'id': str(sessions), 'answer': '3-4'},
        {'id': allergies, 'answer': ['Pollen']},
    ]}, headers=headers)
    assert r.status_code == 204

    form = client.get(url, headers=headers).json()
    by_id = {q['id']: q for s in form['sections'] for q in s['questions']}
    assert by_id[medication]['answer'] == 'Vitamin D'
    assert by_id[medication]['observation'] == 'prescribed in March'
    assert by_id[allergies]['answer'] == ['Pollen']
    assert by_id[sessions]['answer'] == '3-4'

    with Session(engine) as session:
        answers = session.exec(select(models.Answer)).all()
        assert len(answers) == 1
        assert answers[0].data == {str(medication): 'Vitamin D', str(allergies): ['Pollen'], str(sessions): '3-4'}


def test_omitted_observation_clears_it(client, signup, athlete_id):
    headers = signup()
    medication, _, _ = _create_form(client, headers)
    client.post(f'/athletes/{athlete_id}/forms/anamnesis', headers=headers)
    url = f'/athletes/{athlete_id}/forms/anamnesis/answers'
    client.put(url, json={'questions': [{'id': medication, 'answer': 'none', 'observation': 'check again'}]}, headers=headers)
    client.put(url, json={'questions': [{'id': medication, 'answer': 'none'}]}, headers=headers)
    form = client.get(url, headers=headers).json()
    assert form['sections'][0]['questions'][0]['observation'] is None


def test_update_answers_validates_questions(client, signup, athlete_id):
    headers = signup()
    medication, allergies, sessions = _create_form(client, headers)
    client.post(f'/athletes/{athlete_id}/forms/anamnesis', headers=headers)
    url = f'/athletes/{athlete_id}/forms/anamnesis/answers'

    assert client.put(url, json={'questions': [{'id': 9999, 'answer': 'x'}]}, headers=headers).status_code == 400
    assert client.put(url, json={'questions': [{'id': allergies, 'answer': 'Food'}]}, headers=headers).status_code == 400
    assert client.put(url, json={'questions': [{'id': sessions, 'answer': ['1-2']}]}, headers=headers).status_code == 400
    # choice answers must be one of the question's options
    r = client.put(url, json={'questions': [{'id': allergies, 'answer': ['Food', 'Dust']}]}, headers=headers)
    assert r.status_code == 400
    assert 'Dust' in r.json()['message']
    assert client.put(url, json={'questions': [{'id': sessions, 'answer': '7+'}]}, headers=headers).status_code == 400
    # a rejected request stores nothing
    form = client.get(url, headers=headers).json()
    assert all(q['answer'] is None for s in form['sections'] for q in s['questions'])
