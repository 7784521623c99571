import httpx
import pytest

from conftest import USER_HEADERS
from quizpart.errors import RecordStoreError
from quizpart.services import trigger_service
from quizpart.services.attempt_service import AttemptRegistry
from quizpart.services.record_store import RecordStore, SqlRecordStore


def post(client, url, json=None):
    return client.post(url, json=json or {}, headers=USER_HEADERS)


def answer(client, widget_id, question_id, value):
    return post(client, f'/quiz/{widget_id}/answer', {'questionId': question_id, 'value': value})


class FailingStore(RecordStore):
    def add_item(self, list_name, fields):
        raise RecordStoreError('The list does not exist', status=404)

    def get_items(self, *args, **kwargs):
        raise RecordStoreError('The list does not exist', status=404)


def test_start_page_summary(client, make_widget):
    widget = make_widget(time_limit=10)
    response = client.get(f'/quiz/{widget.id}', headers=USER_HEADERS)
    body = response.get_json()
    assert response.status_code == 200
    assert body['questionCount'] == 5
    assert body['totalPoints'] == 6
    assert body['categories'] == ['Geography', 'Science']
    assert body['timeLimit'] == 10
    assert body['hasSavedProgress'] is False
    assert body['attemptStatus'] == 'notStarted'
    assert body['user'] == 'Ana Lopez'


def test_unknown_widget_is_json_404(client):
    response = client.get('/quiz/999', headers=USER_HEADERS)
    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_cannot_start_empty_quiz(client, make_widget):
    widget = make_widget(questions=[])
    response = post(client, f'/quiz/{widget.id}/start')
    assert response.status_code == 400


def test_state_before_start(client, make_widget):
    widget = make_widget()
    response = client.get(f'/quiz/{widget.id}/state', headers=USER_HEADERS)
    assert response.status_code == 400
    assert 'No attempt' in response.get_json()['error']


def test_full_attempt_saves_result(app, client, make_widget):
    widget = make_widget(questions_per_page=3)
    state = post(client, f'/quiz/{widget.id}/start').get_json()['state']
    assert state['status'] == 'inProgress'
    assert [q['id'] for q in state['questions']] == [1, 2, 3]
    assert state['canSubmit'] is False

    answer(client, widget.id, 1, 'b')
    answer(client, widget.id, 2, 'true')
    answer(client, widget.id, 3, ['x', 'z'])
    answer(client, widget.id, 4, 'pacific')
    state = answer(client, widget.id, 5, ['p1:p1', 'p2:p2', 'p3:p3']).get_json()['state']
    assert state['progress'] == {'answered': 5, 'total': 5, 'percentage': 100}

    body = post(client, f'/quiz/{widget.id}/submit').get_json()
    assert body['state']['status'] == 'submitted'
    result = body['result']
    assert result['summary']['percentage'] == 100
    assert result['passed'] is True
    assert result['resultSaved'] is True
    assert result['scoreMessage'] == widget.excellent_score_message
    assert result['message'] == widget.results_saved_message

    [record] = SqlRecordStore().get_items('QuizResults')
    assert record['UserId'] == USER_HEADERS['X-User-Id']
    assert record['UserEmail'] == 'ana@contoso.com'
    assert record['ScorePercentage'] == 100


def test_second_submit_does_not_save_again(client, make_widget):
    widget = make_widget()
    post(client, f'/quiz/{widget.id}/start')
    answer(client, widget.id, 1, 'a')
    first = post(client, f'/quiz/{widget.id}/submit').get_json()['result']
    second = post(client, f'/quiz/{widget.id}/submit').get_json()['result']
    assert first == second
    assert len(SqlRecordStore().get_items('QuizResults')) == 1


def test_submit_without_answers_is_rejected(client, make_widget):
    widget = make_widget()
    post(client, f'/quiz/{widget.id}/start')
    response = post(client, f'/quiz/{widget.id}/submit')
    assert response.status_code == 400


def test_answer_validation(client, make_widget):
    widget = make_widget()
    post(client, f'/quiz/{widget.id}/start')
    assert post(client, f'/quiz/{widget.id}/answer', {'questionId': 1}).status_code == 400
    assert answer(client, widget.id, 'one', 'b').status_code == 400
    assert answer(client, widget.id, 42, 'b').status_code == 400


def test_failed_result_save_still_completes(app, client, make_widget):
    widget = make_widget(enable_progress_saving=False)
    app.extensions['quizpart_record_store'] = FailingStore()
    post(client, f'/quiz/{widget.id}/start')
    answer(client, widget.id, 1, 'b')
    body = post(client, f'/quiz/{widget.id}/submit').get_json()
    assert body['success'] is True
    assert body['result']['resultSaved'] is False
    assert body['result']['error'] == widget.error_message


def test_category_and_page_navigation(client, make_widget):
    widget = make_widget(questions_per_page=1)
    post(client, f'/quiz/{widget.id}/start')
    state = post(client, f'/quiz/{widget.id}/category', {'category': 'Science'}).get_json()['state']
    assert state['totalPages'] == 2
    assert state['questions'][0]['id'] == 2
    state = post(client, f'/quiz/{widget.id}/page', {'page': 2}).get_json()['state']
    assert state['questions'][0]['id'] == 3
    assert post(client, f'/quiz/{widget.id}/page', {'page': 3}).status_code == 400
    assert post(client, f'/quiz/{widget.id}/category', {'category': 'Art'}).status_code == 400


def test_overall_timer_auto_submits_on_next_request(client, make_widget):
    widget = make_widget(time_limit=1)
    post(client, f'/quiz/{widget.id}/start')
    answer(client, widget.id, 1, 'b')
    attempt = AttemptRegistry.get(widget.id, USER_HEADERS['X-User-Id'])
    attempt.started_at -= 61

    response = answer(client, widget.id, 2, 'true')
    body = response.get_json()
    assert response.status_code == 200
    assert body['state']['status'] == 'submitted'
    assert body['state']['autoSubmitted'] is True
    assert body['result']['summary']['score'] == 2
    assert len(SqlRecordStore().get_items('QuizResults')) == 1


def test_question_expired_route(client, make_widget):
    widget = make_widget(enable_question_time_limit=True, default_question_time_limit=20)
    state = post(client, f'/quiz/{widget.id}/start').get_json()['state']
    assert state['questions'][0]['timeLimit'] == 20
    state = post(client, f'/quiz/{widget.id}/question-expired', {'questionId': 1}).get_json()['state']
    assert state['questions'][0]['expired'] is True
    assert answer(client, widget.id, 1, 'b').status_code == 400


def test_retake_clears_answers(client, make_widget):
    widget = make_widget()
    post(client, f'/quiz/{widget.id}/start')
    answer(client, widget.id, 1, 'b')
    post(client, f'/quiz/{widget.id}/submit')
    state = post(client, f'/quiz/{widget.id}/retake').get_json()['state']
    assert state['status'] == 'notStarted'
    assert state['progress']['answered'] == 0
    state = post(client, f'/quiz/{widget.id}/start').get_json()['state']
    assert state['questions'][0]['selectedChoice'] is None


def test_save_and_resume_progress(client, make_widget):
    widget = make_widget()
    post(client, f'/quiz/{widget.id}/start')
    answer(client, widget.id, 1, 'b')
    answer(client, widget.id, 3, ['x'])

    body = post(client, f'/quiz/{widget.id}/progress').get_json()
    assert body['state']['status'] == 'paused'
    assert body['savedRecordId']

    summary = client.get(f'/quiz/{widget.id}', headers=USER_HEADERS).get_json()
    assert summary['hasSavedProgress'] is True

    body = post(client, f'/quiz/{widget.id}/progress/resume').get_json()
    assert body['resume']['resumed'] is True
    assert body['state']['status'] == 'inProgress'
    assert body['state']['progress']['answered'] == 2
    assert SqlRecordStore().get_items('QuizProgress') == []


def test_resume_without_saved_progress_starts_fresh(client, make_widget):
    widget = make_widget()
    body = post(client, f'/quiz/{widget.id}/progress/resume').get_json()
    assert body['resume']['resumed'] is False
    assert body['resume']['notice']
    assert body['state']['status'] == 'inProgress'


def test_submit_clears_saved_progress(client, make_widget):
    widget = make_widget()
    post(client, f'/quiz/{widget.id}/start')
    post(client, f'/quiz/{widget.id}/progress')
    assert len(SqlRecordStore().get_items('QuizProgress')) == 1

    # start over instead of resuming, then finish
    post(client, f'/quiz/{widget.id}/start')
    answer(client, widget.id, 1, 'b')
    post(client, f'/quiz/{widget.id}/submit')
    assert SqlRecordStore().get_items('QuizProgress') == []


def test_progress_saving_disabled(client, make_widget):
    widget = make_widget(enable_progress_saving=False)
    post(client, f'/quiz/{widget.id}/start')
    assert post(client, f'/quiz/{widget.id}/progress').status_code == 400


def test_discard_progress(client, make_widget):
    widget = make_widget()
    post(client, f'/quiz/{widget.id}/start')
    post(client, f'/quiz/{widget.id}/progress')
    response = client.delete(f'/quiz/{widget.id}/progress', headers=USER_HEADERS)
    assert response.get_json() == {'success': True, 'removed': 1}


def test_results_history(client, make_widget):
    widget = make_widget()
    for choice in ('a', 'b'):
        post(client, f'/quiz/{widget.id}/start')
        answer(client, widget.id, 1, choice)
        post(client, f'/quiz/{widget.id}/submit')

    results = client.get(f'/quiz/{widget.id}/results', headers=USER_HEADERS).get_json()['results']
    assert len(results) == 2
    assert results[0]['ResultDate'] >= results[1]['ResultDate']

    other = client.get(f'/quiz/{widget.id}/results', headers={'X-User-Id': 'someone-else'})
    assert other.get_json()['results'] == []


def test_guest_users_get_a_session_identity(client, make_widget):
    widget = make_widget()
    client.post(f'/quiz/{widget.id}/start', json={})
    client.post(f'/quiz/{widget.id}/answer', json={'questionId': 1, 'value': 'b'})
    body = client.post(f'/quiz/{widget.id}/submit', json={}).get_json()
    assert body['result']['resultSaved'] is True
    [record] = SqlRecordStore().get_items('QuizResults')
    assert record['UserId'].startswith('guest-')
    assert record['UserName'].startswith('Guest-')


@pytest.fixture
def webhook_calls(monkeypatch):
    calls = []
    real_client = httpx.Client

    def handler(request):
        calls.append(request)
        return httpx.Response(200)

    monkeypatch.setattr(
        trigger_service.httpx, 'Client',
        lambda *args, **kwargs: real_client(transport=httpx.MockTransport(handler)),
    )
    return calls


def test_high_score_fires_webhook(client, make_widget, webhook_calls):
    widget = make_widget(webhook_enabled=True, webhook_url='https://hooks.example.com/score', webhook_threshold=30)
    post(client, f'/quiz/{widget.id}/start')
    answer(client, widget.id, 1, 'b')
    answer(client, widget.id, 2, 'true')
    body = post(client, f'/quiz/{widget.id}/submit').get_json()

    assert body['result']['triggerSent'] is True
    [request] = webhook_calls
    assert request.url.host == 'hooks.example.com'


def test_low_score_does_not_fire_webhook(client, make_widget, webhook_calls):
    widget = make_widget(webhook_enabled=True, webhook_url='https://hooks.example.com/score', webhook_threshold=90)
    post(client, f'/quiz/{widget.id}/start')
    answer(client, widget.id, 2, 'true')
    body = post(client, f'/quiz/{widget.id}/submit').get_json()
    assert body['result']['triggerSent'] is False
    assert webhook_calls == []


def test_non_ascii_webhook_header_does_not_break_submission(client, make_widget, webhook_calls):
    widget = make_widget(
        webhook_enabled=True, webhook_url='https://hooks.example.com/score',
        webhook_threshold=0, webhook_headers='{"X-Owner": "José"}',
    )
    post(client, f'/quiz/{widget.id}/start')
    answer(client, widget.id, 1, 'b')
    response = post(client, f'/quiz/{widget.id}/submit')
    assert response.status_code == 200
    assert response.get_json()['result']['triggerSent'] is True
    [request] = webhook_calls
    assert 'X-Owner' not in request.headers


def test_failing_webhook_saves_the_result_once(client, make_widget, monkeypatch):
    real_client = httpx.Client

    def handler(request):
        raise RuntimeError('connection reset')

    monkeypatch.setattr(
        trigger_service.httpx, 'Client',
        lambda *args, **kwargs: real_client(transport=httpx.MockTransport(handler)),
    )
    widget = make_widget(webhook_enabled=True, webhook_url='https://hooks.example.com/score', webhook_threshold=0)
    post(client, f'/quiz/{widget.id}/start')
    answer(client, widget.id, 1, 'b')
    body = post(client, f'/quiz/{widget.id}/submit').get_json()
    assert body['result']['resultSaved'] is True
    assert body['result']['triggerSent'] is False

    for _ in range(2):
        state = client.get(f'/quiz/{widget.id}/state', headers=USER_HEADERS)
        assert state.status_code == 200
        assert state.get_json()['result']['resultId'] == body['result']['resultId']
    assert len(SqlRecordStore().get_items('QuizResults')) == 1
