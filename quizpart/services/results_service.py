"""
Results Service
Builds the result record for a submitted attempt and appends it
to the widget's results list
"""
import json
import logging
from dataclasses import dataclass
from typing import Optional

from quizpart.errors import RecordStoreError
from quizpart.services.record_store import RESULTS_COLUMNS, get_record_store
from quizpart.services.scoring_service import ScoringService, question_points
from quizpart.utils.helpers import now_utc, to_local

logger = logging.getLogger(__name__)


@dataclass
class SaveOutcome:
    success: bool
    item_id: Optional[int] = None
    error: Optional[str] = None


def _selected_text(selected):
    if selected is None:
        return ''
    if isinstance(selected, (list, tuple)):
        return ','.join(str(s) for s in selected)
    return str(selected)


def question_details(questions):
    """Per-question rows stored in the QuestionDetails field"""
    details = []
    for question in questions:
        points = question_points(question)
        is_correct = ScoringService.is_correct(question)
        details.append({
            'QuestionId': str(question.id),
            'QuestionTitle': question.title,
            'QuestionType': question.type.value,
            'SelectedChoice': _selected_text(question.selected),
            'IsCorrect': is_correct,
            'EarnedPoints': points if is_correct else 0,
            'PossiblePoints': points,
        })
    return details


def build_result_record(quiz_title, summary, questions, user, result_date=None, tz_name=None):
    result_date = result_date or now_utc()
    local_date = to_local(result_date, tz_name)
    return {
        'Title': f"Quiz Result - {local_date.strftime('%Y-%m-%d')}",
        'UserName': user.display_name or 'Anonymous',
        'UserEmail': user.email or 'Not provided',
        'UserId': user.user_id or 'Unknown',
        'QuizTitle': quiz_title or 'Quiz',
        'Score': summary.earned,
        'TotalPoints': summary.possible,
        'ScorePercentage': summary.percentage,
        'QuestionsAnswered': summary.answered,
        'TotalQuestions': summary.total_questions,
        'ResultDate': result_date.isoformat(),
        'QuestionDetails': json.dumps(question_details(questions)),
    }


class ResultsService:
    """Append-only result records"""

    def __init__(self, store=None):
        self.store = store or get_record_store()

    def save_result(self, list_name, record):
        """Append a result; failures come back as an outcome, never raised"""
        try:
            self.store.ensure_list(list_name, RESULTS_COLUMNS, 'Quiz Results')
            item = self.store.add_item(list_name, record)
        except RecordStoreError as exc:
            logger.error('Saving quiz result to %s failed: %s', list_name, exc)
            return SaveOutcome(success=False, error=str(exc))
        logger.info(
            'Saved result for %s on %s: %s%%',
            record.get('UserId'), record.get('QuizTitle'), record.get('ScorePercentage')
        )
        return SaveOutcome(success=True, item_id=item.get('Id'))

    def list_results(self, list_name, quiz_title, user_id=None, top=50):
        """Newest results first for a quiz, optionally for one user"""
        filters = {'QuizTitle': quiz_title}
        if user_id:
            filters['UserId'] = user_id
        self.store.ensure_list(list_name, RESULTS_COLUMNS, 'Quiz Results')
        items = self.store.get_items(
            list_name, filters=filters, order_by='ResultDate', descending=True, top=top
        )
        for item in items:
            details = item.get('QuestionDetails')
            if isinstance(details, str):
                try:
                    item['QuestionDetails'] = json.loads(details)
                except ValueError:
                    item['QuestionDetails'] = []
        return items
