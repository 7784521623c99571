"""
Progress Service
Save and continue later: one saved record per (user, quiz) in the
widget's progress list, restored into a live attempt on resume
"""
import json
import logging
from dataclasses import dataclass
from typing import Optional

from quizpart.errors import RecordStoreError
from quizpart.models.question import Question, is_valid_question_dict
from quizpart.services.attempt_service import AttemptStatus
from quizpart.services.record_store import PROGRESS_COLUMNS, get_record_store

logger = logging.getLogger(__name__)

NOTICE_NOT_FOUND = 'No saved progress was found. A new attempt has been started.'
NOTICE_UNREADABLE = 'Your saved progress could not be loaded. A new attempt has been started.'
NOTICE_CORRUPT = 'Your saved progress was damaged and has been discarded. A new attempt has been started.'
NOTICE_OUTDATED = 'This quiz has changed since your progress was saved. A new attempt has been started.'


@dataclass
class ResumeOutcome:
    resumed: bool
    notice: Optional[str] = None
    merged: int = 0
    discarded: int = 0

    def to_dict(self):
        return {
            'resumed': self.resumed,
            'notice': self.notice,
            'merged': self.merged,
            'discarded': self.discarded,
        }


class ProgressService:
    """Saved, in-progress attempts"""

    def __init__(self, list_name, store=None):
        self.list_name = list_name
        self.store = store or get_record_store()

    def _ensure_list(self):
        self.store.ensure_list(self.list_name, PROGRESS_COLUMNS, 'Quiz Progress')

    def find_saved(self, user_id, quiz_title):
        """Most recently saved record for the user and quiz, or None"""
        self._ensure_list()
        items = self.store.get_items(
            self.list_name,
            filters={'UserId': user_id, 'QuizTitle': quiz_title},
            order_by='LastSaved',
            descending=True,
            top=1,
        )
        return items[0] if items else None

    def save(self, attempt, user):
        """
        Store the attempt, updating the user's existing record when there is one.
        Raises RecordStoreError; the attempt is paused only on success.
        """
        self._ensure_list()
        data = attempt.to_progress_data(user)
        fields = {
            'Title': f'{data["quizTitle"]} - {user.display_name} - In Progress',
            'UserId': user.user_id,
            'UserName': user.display_name,
            'QuizTitle': data['quizTitle'],
            'QuizData': json.dumps(data),
            'LastSaved': data['lastSaved'],
        }

        record_id = attempt.saved_record_id
        if record_id:
            try:
                self.store.update_item(self.list_name, record_id, fields)
            except RecordStoreError as exc:
                if exc.status != 404:
                    raise
                logger.warning('Saved progress %s vanished, creating a new record', record_id)
                record_id = None

        if not record_id:
            existing = self.find_saved(user.user_id, data['quizTitle'])
            if existing:
                record_id = existing['Id']
                self.store.update_item(self.list_name, record_id, fields)
            else:
                record_id = self.store.add_item(self.list_name, fields)['Id']

        attempt.saved_record_id = record_id
        if attempt.status == AttemptStatus.IN_PROGRESS:
            attempt.pause()
        logger.info('Saved progress for %s on %s as record %s', user.user_id, data['quizTitle'], record_id)
        return record_id

    def resume(self, attempt, user):
        """
        Restore saved answers into the attempt.
        Anything unusable falls back to a fresh attempt with a notice.
        """
        quiz_title = attempt.settings.title
        try:
            item = self.find_saved(user.user_id, quiz_title)
        except RecordStoreError as exc:
            logger.error('Could not read saved progress for %s: %s', user.user_id, exc)
            return self._fresh_start(attempt, NOTICE_UNREADABLE)

        if item is None:
            return self._fresh_start(attempt, NOTICE_NOT_FOUND)

        try:
            data = json.loads(item.get('QuizData') or '')
        except (TypeError, ValueError):
            data = None
        if not isinstance(data, dict) or not isinstance(data.get('questions'), list):
            logger.warning('Saved progress record %s is corrupt, discarding it', item.get('Id'))
            self._delete_quietly(item.get('Id'))
            return self._fresh_start(attempt, NOTICE_CORRUPT)

        restored = []
        discarded = 0
        for raw in data['questions']:
            if is_valid_question_dict(raw):
                restored.append(Question.from_dict(raw))
            else:
                discarded += 1
        if discarded:
            logger.warning('Discarded %s malformed questions from saved progress %s', discarded, item.get('Id'))

        merged = attempt.apply_progress(restored, data)
        if merged == 0:
            self._delete_quietly(item.get('Id'))
            outcome = self._fresh_start(attempt, NOTICE_OUTDATED)
            outcome.discarded = discarded
            return outcome

        self._delete_quietly(item.get('Id'))
        attempt.saved_record_id = None
        logger.info('Resumed %s questions for %s on %s', merged, user.user_id, quiz_title)
        return ResumeOutcome(resumed=True, merged=merged, discarded=discarded)

    def discard(self, user_id, quiz_title):
        """Delete every saved record for the user and quiz. Returns the count."""
        self._ensure_list()
        items = self.store.get_items(
            self.list_name, filters={'UserId': user_id, 'QuizTitle': quiz_title}
        )
        for item in items:
            self.store.delete_item(self.list_name, item['Id'])
        return len(items)

    def clear_after_submit(self, attempt, user):
        """Drop the saved record once the attempt is submitted; failures only logged"""
        try:
            removed = self.discard(user.user_id, attempt.settings.title)
        except RecordStoreError as exc:
            logger.error('Could not remove saved progress after submit: %s', exc)
            return False
        attempt.saved_record_id = None
        return removed > 0

    def _delete_quietly(self, item_id):
        if not item_id:
            return
        try:
            self.store.delete_item(self.list_name, item_id)
        except RecordStoreError as exc:
            logger.error('Could not delete saved progress %s: %s', item_id, exc)

    @staticmethod
    def _fresh_start(attempt, notice):
        attempt.retake()
        if attempt.questions:
            attempt.start()
        return ResumeOutcome(resumed=False, notice=notice)
