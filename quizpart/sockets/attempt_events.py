"""
Socket.IO Event Handlers
Countdown timers for a running attempt; the client reports expiry,
the server decides and pushes the new state to the attempt's room
"""
import logging

from flask_socketio import emit, join_room

from quizpart.errors import AttemptStateError
from quizpart.extensions import db, socketio
from quizpart.models import QuizWidget
from quizpart.services.attempt_service import AttemptRegistry, AttemptStatus
from quizpart.services.submission_service import finalize_submission
from quizpart.utils import get_current_user

logger = logging.getLogger(__name__)


def attempt_room(widget_id, user_id):
    return f'attempt_{widget_id}_{user_id}'


def _load(data):
    """(widget, user, attempt) for an event payload, attempt may be None"""
    try:
        widget_id = int((data or {}).get('widgetId'))
    except (TypeError, ValueError):
        raise AttemptStateError('widgetId must be a number')
    widget = db.session.get(QuizWidget, widget_id)
    if widget is None:
        raise AttemptStateError(f'Quiz {widget_id} not found')
    user = get_current_user()
    return widget, user, AttemptRegistry.get(widget.id, user.user_id)


def _push(widget, user, attempt):
    """Send the current state, or the result once the attempt is submitted"""
    room = attempt_room(widget.id, user.user_id)
    join_room(room)
    if attempt.status == AttemptStatus.SUBMITTED:
        result = finalize_submission(widget, attempt, user)
        emit('attempt_submitted', {'state': attempt.state_dict(), 'result': result}, room=room)
    else:
        emit('attempt_state', {'state': attempt.state_dict()}, room=room)


def register_socket_events():
    """Register all Socket.IO event handlers on the current server"""

    @socketio.on('join_attempt')
    def join_attempt(data):
        try:
            widget, user, attempt = _load(data)
        except AttemptStateError as exc:
            emit('attempt_error', {'error': str(exc)})
            return
        join_room(attempt_room(widget.id, user.user_id))
        logger.debug('%s joined attempt room for quiz %s', user.user_id, widget.id)
        if attempt is not None:
            attempt.check_timers()
            _push(widget, user, attempt)

    @socketio.on('timer_check')
    def timer_check(data):
        """Periodic tick from the client; the overall timer is enforced here"""
        try:
            widget, user, attempt = _load(data)
            if attempt is None:
                raise AttemptStateError('No attempt has been started for this quiz')
        except AttemptStateError as exc:
            emit('attempt_error', {'error': str(exc)})
            return
        attempt.check_timers()
        _push(widget, user, attempt)

    @socketio.on('question_timer_expired')
    def question_timer_expired(data):
        try:
            widget, user, attempt = _load(data)
            if attempt is None:
                raise AttemptStateError('No attempt has been started for this quiz')
            question_id = int(data.get('questionId'))
        except (TypeError, ValueError):
            emit('attempt_error', {'error': 'questionId must be a number'})
            return
        except AttemptStateError as exc:
            emit('attempt_error', {'error': str(exc)})
            return

        was_running = attempt.status == AttemptStatus.IN_PROGRESS
        try:
            attempt.expire_question(question_id)
        except AttemptStateError as exc:
            if not (was_running and attempt.status == AttemptStatus.SUBMITTED):
                emit('attempt_error', {'error': str(exc)})
                return
        _push(widget, user, attempt)

    @socketio.on('overall_timer_expired')
    def overall_timer_expired(data):
        try:
            widget, user, attempt = _load(data)
            if attempt is None:
                raise AttemptStateError('No attempt has been started for this quiz')
            attempt.expire_overall_timer()
        except AttemptStateError as exc:
            emit('attempt_error', {'error': str(exc)})
            return
        logger.info('Overall timer expired for %s on quiz %s', user.user_id, widget.id)
        _push(widget, user, attempt)
