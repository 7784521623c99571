import warnings

import pytest
from sqlalchemy.exc import LegacyAPIWarning

from conftest import USER_HEADERS
from quizpart import create_app
from quizpart.extensions import socketio
from quizpart.services.attempt_service import AttemptRegistry
from quizpart.services.record_store import SqlRecordStore
from quizpart.sockets import attempt_room


@pytest.fixture
def sio(app):
    client = socketio.test_client(app, headers=USER_HEADERS)
    yield client
    if client.is_connected():
        client.disconnect()


def received(sio, name):
    return [event['args'][0] for event in sio.get_received() if event['name'] == name]


def start_attempt(client, widget):
    response = client.post(f'/quiz/{widget.id}/start', json={}, headers=USER_HEADERS)
    assert response.status_code == 200
    return AttemptRegistry.get(widget.id, USER_HEADERS['X-User-Id'])


def test_attempt_room_name():
    assert attempt_room(3, 'guest-ab12') == 'attempt_3_guest-ab12'


def test_join_pushes_current_state(client, sio, make_widget):
    widget = make_widget(time_limit=10)
    start_attempt(client, widget)
    sio.emit('join_attempt', {'widgetId': widget.id})
    states = received(sio, 'attempt_state')
    assert len(states) == 1
    assert states[0]['state']['status'] == 'inProgress'
    assert states[0]['state']['remainingTime'] == 600


def test_join_without_attempt_is_silent(sio, make_widget):
    widget = make_widget()
    sio.emit('join_attempt', {'widgetId': widget.id})
    assert sio.get_received() == []


def test_bad_widget_id_reports_error(sio):
    sio.emit('join_attempt', {'widgetId': 'abc'})
    errors = received(sio, 'attempt_error')
    assert errors == [{'error': 'widgetId must be a number'}]

    sio.emit('timer_check', {'widgetId': 999})
    assert received(sio, 'attempt_error') == [{'error': 'Quiz 999 not found'}]


def test_timer_check_auto_submits_expired_attempt(client, sio, make_widget):
    widget = make_widget(time_limit=1)
    attempt = start_attempt(client, widget)
    attempt.select_answer(1, 'b')
    attempt.started_at -= 61

    sio.emit('timer_check', {'widgetId': widget.id})
    submitted = received(sio, 'attempt_submitted')
    assert len(submitted) == 1
    assert submitted[0]['state']['autoSubmitted'] is True
    assert submitted[0]['result']['summary']['score'] == 2
    assert submitted[0]['result']['resultSaved'] is True
    assert len(SqlRecordStore().get_items('QuizResults')) == 1


def test_timer_check_without_attempt(sio, make_widget):
    widget = make_widget()
    sio.emit('timer_check', {'widgetId': widget.id})
    assert received(sio, 'attempt_error') == [{'error': 'No attempt has been started for this quiz'}]


def test_question_timer_expired_locks_question(client, sio, make_widget):
    widget = make_widget(enable_question_time_limit=True, default_question_time_limit=30)
    attempt = start_attempt(client, widget)

    sio.emit('question_timer_expired', {'widgetId': widget.id, 'questionId': 2})
    states = received(sio, 'attempt_state')
    assert len(states) == 1
    assert 2 in attempt.expired_questions
    assert states[0]['state']['status'] == 'inProgress'


def test_question_timer_expired_needs_question_id(client, sio, make_widget):
    widget = make_widget(enable_question_time_limit=True)
    start_attempt(client, widget)
    sio.emit('question_timer_expired', {'widgetId': widget.id, 'questionId': None})
    assert received(sio, 'attempt_error') == [{'error': 'questionId must be a number'}]


def test_question_timer_on_untimed_quiz_is_an_error(client, sio, make_widget):
    widget = make_widget()
    start_attempt(client, widget)
    sio.emit('question_timer_expired', {'widgetId': widget.id, 'questionId': 1})
    assert received(sio, 'attempt_error') == [{'error': 'Question 1 has no time limit'}]


def test_last_question_expiry_submits(client, sio, make_widget, questions):
    widget = make_widget(questions=questions[:2], enable_question_time_limit=True)
    attempt = start_attempt(client, widget)
    attempt.select_answer(1, 'b')
    attempt.expire_question(1)

    sio.emit('question_timer_expired', {'widgetId': widget.id, 'questionId': 2})
    submitted = received(sio, 'attempt_submitted')
    assert len(submitted) == 1
    assert submitted[0]['state']['status'] == 'submitted'
    assert submitted[0]['result']['autoSubmitted'] is True


def test_overall_timer_expired_submits(client, sio, make_widget):
    widget = make_widget(time_limit=5)
    attempt = start_attempt(client, widget)
    attempt.select_answer(4, 'pacific')

    sio.emit('overall_timer_expired', {'widgetId': widget.id})
    submitted = received(sio, 'attempt_submitted')
    assert len(submitted) == 1
    assert submitted[0]['result']['summary']['score'] == 1


def test_overall_timer_expired_without_limit(client, sio, make_widget):
    widget = make_widget()
    start_attempt(client, widget)
    sio.emit('overall_timer_expired', {'widgetId': widget.id})
    assert received(sio, 'attempt_error') == [{'error': 'This quiz has no overall time limit'}]


def test_events_answer_on_every_app_built_in_the_process(app):
    for _ in range(2):
        other = create_app('testing')
        client = socketio.test_client(other, headers=USER_HEADERS)
        client.emit('join_attempt', {'widgetId': 'abc'})
        assert received(client, 'attempt_error') == [{'error': 'widgetId must be a number'}]
        client.disconnect()


def test_widget_lookup_uses_the_session_api(client, sio, make_widget):
    widget = make_widget()
    start_attempt(client, widget)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always')
        sio.emit('timer_check', {'widgetId': widget.id})
    assert received(sio, 'attempt_state')
    assert not [w for w in caught if issubclass(w.category, LegacyAPIWarning)]
