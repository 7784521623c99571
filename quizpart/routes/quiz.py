"""
Quiz Routes
Quiz taking for one widget: start page, answering, paging,
timers, submit, retake, save-and-continue and result history
"""
import logging

from flask import Blueprint, jsonify, request

from quizpart.errors import AttemptStateError, RecordStoreError
from quizpart.models import QuizWidget
from quizpart.services.attempt_service import AttemptRegistry, AttemptStatus
from quizpart.services.progress_service import ProgressService
from quizpart.services.results_service import ResultsService
from quizpart.services.submission_service import finalize_submission
from quizpart.utils import get_current_user, get_json_body, json_error

logger = logging.getLogger(__name__)

quiz_bp = Blueprint('quiz', __name__)


@quiz_bp.errorhandler(AttemptStateError)
def handle_attempt_error(exc):
    return json_error(str(exc), 400)


def _question_id(data):
    try:
        return int(data.get('questionId'))
    except (TypeError, ValueError):
        raise AttemptStateError('questionId must be a number')


def _require_attempt(widget, user):
    attempt = AttemptRegistry.get(widget.id, user.user_id)
    if attempt is None:
        raise AttemptStateError('No attempt has been started for this quiz')
    return attempt


def _progress_service(widget):
    return ProgressService(widget.progress_list_name or 'QuizProgress')


def state_payload(widget, attempt, user, **extra):
    """Attempt state plus the result once the attempt is submitted"""
    attempt.check_timers()
    body = {'success': True, 'state': attempt.state_dict()}
    body['state']['showProgressIndicator'] = bool(widget.show_progress_indicator)
    body['state']['enableProgressSaving'] = bool(widget.enable_progress_saving)
    if attempt.status == AttemptStatus.SUBMITTED:
        body['result'] = finalize_submission(widget, attempt, user)
    body.update(extra)
    return body


# ========================================
# START PAGE
# ========================================

@quiz_bp.route('/<int:widget_id>')
def start_page(widget_id):
    """Summary shown before the quiz starts"""
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    questions = widget.get_questions()

    has_saved = False
    if widget.enable_progress_saving:
        try:
            has_saved = _progress_service(widget).find_saved(user.user_id, widget.title) is not None
        except RecordStoreError as exc:
            logger.error('Could not look up saved progress: %s', exc)

    attempt = AttemptRegistry.get(widget.id, user.user_id)
    return jsonify({
        'success': True,
        'widgetId': widget.id,
        'title': widget.title,
        'questionCount': len(questions),
        'totalPoints': sum(q.points if q.points and q.points > 0 else 1 for q in questions),
        'categories': widget.categories(questions),
        'timeLimit': widget.time_limit if widget.has_overall_timer() else None,
        'enableQuestionTimeLimit': bool(widget.enable_question_time_limit),
        'passingScore': widget.passing_score,
        'enableProgressSaving': bool(widget.enable_progress_saving),
        'hasSavedProgress': has_saved,
        'attemptStatus': attempt.status.value if attempt else AttemptStatus.NOT_STARTED.value,
        'user': user.display_name,
    })


@quiz_bp.route('/<int:widget_id>/start', methods=['POST'])
def start(widget_id):
    """Begin a fresh attempt, discarding any in-memory one"""
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    if not widget.get_questions():
        return json_error('This quiz has no questions yet', 400)

    attempt = AttemptRegistry.create(widget, user.user_id)
    attempt.start()
    logger.info('%s started quiz %s', user.user_id, widget.id)
    return jsonify(state_payload(widget, attempt, user))


@quiz_bp.route('/<int:widget_id>/state')
def state(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    attempt = _require_attempt(widget, user)
    return jsonify(state_payload(widget, attempt, user))


# ========================================
# ANSWERING AND NAVIGATION
# ========================================

@quiz_bp.route('/<int:widget_id>/answer', methods=['POST'])
def answer(widget_id):
    """Record the selection for one question"""
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    attempt = _require_attempt(widget, user)
    data = get_json_body()
    if 'value' not in data:
        return json_error('value is required', 400)

    was_running = attempt.status == AttemptStatus.IN_PROGRESS
    try:
        attempt.select_answer(_question_id(data), data['value'])
    except AttemptStateError:
        # the overall timer ran out first; report the submitted attempt
        if not (was_running and attempt.status == AttemptStatus.SUBMITTED):
            raise
    return jsonify(state_payload(widget, attempt, user))


@quiz_bp.route('/<int:widget_id>/category', methods=['POST'])
def category(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    attempt = _require_attempt(widget, user)
    attempt.set_category(get_json_body().get('category'))
    return jsonify(state_payload(widget, attempt, user))


@quiz_bp.route('/<int:widget_id>/page', methods=['POST'])
def page(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    attempt = _require_attempt(widget, user)
    try:
        number = int(get_json_body().get('page'))
    except (TypeError, ValueError):
        return json_error('page must be a number', 400)
    attempt.set_page(number)
    return jsonify(state_payload(widget, attempt, user))


@quiz_bp.route('/<int:widget_id>/question-expired', methods=['POST'])
def question_expired(widget_id):
    """A per-question countdown reached zero on the client"""
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    attempt = _require_attempt(widget, user)
    was_running = attempt.status == AttemptStatus.IN_PROGRESS
    try:
        attempt.expire_question(_question_id(get_json_body()))
    except AttemptStateError:
        if not (was_running and attempt.status == AttemptStatus.SUBMITTED):
            raise
    return jsonify(state_payload(widget, attempt, user))


# ========================================
# SUBMIT / RETAKE
# ========================================

@quiz_bp.route('/<int:widget_id>/submit', methods=['POST'])
def submit(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    attempt = _require_attempt(widget, user)
    attempt.submit()
    return jsonify(state_payload(widget, attempt, user))


@quiz_bp.route('/<int:widget_id>/retake', methods=['POST'])
def retake(widget_id):
    """Back to the start page with answers cleared and questions reshuffled"""
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    attempt = AttemptRegistry.get(widget.id, user.user_id)
    if attempt is None:
        attempt = AttemptRegistry.create(widget, user.user_id)
    else:
        attempt.retake()
    return jsonify(state_payload(widget, attempt, user))


# ========================================
# SAVE AND CONTINUE LATER
# ========================================

@quiz_bp.route('/<int:widget_id>/progress', methods=['POST'])
def save_progress(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    if not widget.enable_progress_saving:
        return json_error('Saving progress is not enabled for this quiz', 400)
    attempt = _require_attempt(widget, user)
    attempt.check_timers()
    if attempt.status not in (AttemptStatus.IN_PROGRESS, AttemptStatus.PAUSED):
        return json_error(f'Cannot save an attempt that is {attempt.status.value}', 400)

    try:
        record_id = _progress_service(widget).save(attempt, user)
    except RecordStoreError as exc:
        logger.error('Saving progress for %s failed: %s', user.user_id, exc)
        return json_error('Failed to save progress. Please try again.', 502)

    return jsonify(state_payload(
        widget, attempt, user,
        savedRecordId=record_id,
        message='Your progress has been saved. You can continue later.',
    ))


@quiz_bp.route('/<int:widget_id>/progress/resume', methods=['POST'])
def resume_progress(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    if not widget.enable_progress_saving:
        return json_error('Saving progress is not enabled for this quiz', 400)

    attempt = AttemptRegistry.create(widget, user.user_id)
    outcome = _progress_service(widget).resume(attempt, user)
    return jsonify(state_payload(widget, attempt, user, resume=outcome.to_dict()))


@quiz_bp.route('/<int:widget_id>/progress', methods=['DELETE'])
def discard_progress(widget_id):
    """Start over instead of continuing"""
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    try:
        removed = _progress_service(widget).discard(user.user_id, widget.title)
    except RecordStoreError as exc:
        logger.error('Discarding progress for %s failed: %s', user.user_id, exc)
        return json_error('Failed to discard saved progress.', 502)
    return jsonify({'success': True, 'removed': removed})


# ========================================
# RESULTS
# ========================================

@quiz_bp.route('/<int:widget_id>/results')
def results(widget_id):
    """The current user's past results for this quiz, newest first"""
    widget = QuizWidget.query.get_or_404(widget_id)
    user = get_current_user()
    top = request.args.get('top', 50, type=int)
    try:
        items = ResultsService().list_results(
            widget.results_list_name or 'QuizResults', widget.title, user_id=user.user_id, top=top
        )
    except RecordStoreError as exc:
        logger.error('Loading results failed: %s', exc)
        return json_error(widget.error_message or 'Could not load results.', 502)
    return jsonify({'success': True, 'results': items})
