"""
Submission Service
What happens after an attempt is scored: the result is appended to the
results list, saved progress is cleared and the high score trigger fires.
Runs once per submission, whether the user or a timer submitted.
"""
import logging

from flask import current_app

from quizpart.services.progress_service import ProgressService
from quizpart.services.results_service import ResultsService, build_result_record
from quizpart.services.scoring_service import ScoringService
from quizpart.services.trigger_service import HttpTriggerService, TriggerConfig

logger = logging.getLogger(__name__)


def finalize_submission(widget, attempt, user, store=None, http_client=None):
    """
    Persist and announce a submitted attempt.
    A second call returns the first outcome without saving again.
    """
    if attempt.result_outcome is not None:
        return attempt.result_outcome

    config = current_app.config
    summary = attempt.summary
    record = build_result_record(
        widget.title, summary, attempt.questions, user, tz_name=config.get('TIMEZONE')
    )

    saved = ResultsService(store).save_result(widget.results_list_name or 'QuizResults', record)

    if widget.enable_progress_saving:
        ProgressService(widget.progress_list_name or 'QuizProgress', store).clear_after_submit(attempt, user)

    if saved.success:
        message = widget.results_saved_message or widget.success_message
        error = None
    else:
        message = None
        error = widget.error_message or 'An error occurred while submitting your quiz.'

    outcome = {
        'summary': summary.to_dict(),
        'passed': ScoringService.passed(summary.percentage, widget.passing_score or 0),
        'passingScore': widget.passing_score,
        'scoreMessage': widget.score_message(summary.percentage),
        'autoSubmitted': attempt.auto_submitted,
        'resultSaved': saved.success,
        'resultId': saved.item_id,
        'message': message,
        'error': error,
        'triggerSent': False,
        'questionResults': ScoringService.question_results(attempt.questions),
    }
    # Recorded before the trigger fires; the result is saved once per attempt
    attempt.result_outcome = outcome

    trigger_config = TriggerConfig.from_widget(widget, config.get('WEBHOOK_DEFAULT_TIMEOUT', 30))
    trigger = HttpTriggerService(config.get('SITE_URL'), client=http_client).send_high_score_trigger(
        record, trigger_config
    )
    outcome['triggerSent'] = trigger.sent and trigger.success
    return outcome
