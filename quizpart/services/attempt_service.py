"""
Attempt Service
In-memory quiz state for one user on one widget:
start -> answer -> submit, with pause/resume and countdown timers
"""
import logging
import math
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from quizpart.errors import AttemptStateError
from quizpart.extensions import active_attempts
from quizpart.models.question import QuestionType
from quizpart.services.scoring_service import ScoringService

logger = logging.getLogger(__name__)

ALL_CATEGORIES = 'All'


class AttemptStatus(str, Enum):
    NOT_STARTED = 'notStarted'
    IN_PROGRESS = 'inProgress'
    PAUSED = 'paused'
    SUBMITTED = 'submitted'


@dataclass
class AttemptSettings:
    title: str = 'Quiz'
    questions_per_page: int = 5
    randomize_questions: bool = False
    randomize_answers: bool = False
    require_all_answered: bool = False
    time_limit: int = 0  # minutes, 0 = no overall timer
    enable_question_time_limit: bool = False
    default_question_time_limit: int = 0  # seconds
    passing_score: int = 0

    @classmethod
    def from_widget(cls, widget):
        return cls(
            title=widget.title or 'Quiz',
            questions_per_page=widget.questions_per_page or 5,
            randomize_questions=bool(widget.randomize_questions),
            randomize_answers=bool(widget.randomize_answers),
            require_all_answered=bool(widget.require_all_answered),
            time_limit=widget.time_limit or 0,
            enable_question_time_limit=bool(widget.enable_question_time_limit),
            default_question_time_limit=widget.default_question_time_limit or 0,
            passing_score=widget.passing_score or 0,
        )


class Attempt:
    """One user's run through a widget's question set"""

    def __init__(self, widget_id, settings, questions, rng=None, clock=None):
        self.widget_id = widget_id
        self.settings = settings
        self.rng = rng or random.Random()
        self.clock = clock or time.time

        # Unshuffled, unanswered copies; every reshuffle starts from here
        self.original_questions = []
        for question in questions:
            clean = question.copy()
            clean.selected = None
            self.original_questions.append(clean)

        self.status = AttemptStatus.NOT_STARTED
        self.questions = self._build_working_set()
        self.saved_record_id = None
        self._reset_progress()

    def _reset_progress(self):
        self.current_page = 1
        self.current_category = ALL_CATEGORIES
        self.expired_questions = set()
        self.started_at = None
        self.elapsed_before = 0
        self.summary = None
        self.auto_submitted = False
        self.submitted_at = None
        self.result_outcome = None

    def _build_working_set(self):
        working = [q.copy() for q in self.original_questions]
        if self.settings.randomize_questions:
            self.rng.shuffle(working)
        if self.settings.randomize_answers:
            for question in working:
                self.rng.shuffle(question.choices)
        return working

    # ---------------- lookups ----------------

    def get_question(self, question_id):
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def categories(self):
        seen = []
        for question in self.questions:
            if question.category and question.category not in seen:
                seen.append(question.category)
        return [ALL_CATEGORIES] + seen

    def filtered_questions(self):
        if self.current_category == ALL_CATEGORIES:
            return list(self.questions)
        return [q for q in self.questions if q.category == self.current_category]

    def total_pages(self):
        per_page = max(1, self.settings.questions_per_page)
        return max(1, math.ceil(len(self.filtered_questions()) / per_page))

    def visible_questions(self):
        per_page = max(1, self.settings.questions_per_page)
        start = (self.current_page - 1) * per_page
        return self.filtered_questions()[start:start + per_page]

    def answered_count(self):
        return sum(1 for q in self.questions if q.is_answered)

    def progress(self):
        total = len(self.questions)
        answered = self.answered_count()
        return {
            'answered': answered,
            'total': total,
            'percentage': round(answered / total * 100) if total else 0,
        }

    def question_time_limit(self, question):
        if not self.settings.enable_question_time_limit:
            return None
        limit = question.time_limit or self.settings.default_question_time_limit
        return limit if limit and limit > 0 else None

    # ---------------- transitions ----------------

    def start(self):
        if self.status != AttemptStatus.NOT_STARTED:
            raise AttemptStateError(f'Cannot start an attempt that is {self.status.value}')
        if not self.questions:
            raise AttemptStateError('This quiz has no questions yet')
        self._reset_progress()
        self.status = AttemptStatus.IN_PROGRESS
        self.started_at = self.clock()

    def _require_in_progress(self):
        self.check_timers()
        if self.status != AttemptStatus.IN_PROGRESS:
            raise AttemptStateError(f'Attempt is {self.status.value}')

    def select_answer(self, question_id, value):
        self._require_in_progress()
        question = self.get_question(question_id)
        if question is None:
            raise AttemptStateError(f'Question {question_id} is not part of this quiz')
        if question_id in self.expired_questions:
            raise AttemptStateError('Time for this question has expired')
        question.selected = value
        return question

    def set_category(self, category):
        if category not in self.categories():
            raise AttemptStateError(f'Unknown category {category!r}')
        self.current_category = category
        self.current_page = 1

    def set_page(self, page):
        if not 1 <= page <= self.total_pages():
            raise AttemptStateError(f'Page {page} is out of range')
        self.current_page = page

    def can_submit(self):
        answered = self.answered_count()
        if self.settings.require_all_answered:
            return answered == len(self.questions)
        return answered > 0

    def submit(self, auto=False):
        """Score the attempt. Submitting twice returns the first summary."""
        if self.status == AttemptStatus.SUBMITTED:
            return self.summary
        if self.status != AttemptStatus.IN_PROGRESS:
            raise AttemptStateError(f'Cannot submit an attempt that is {self.status.value}')

        if not auto:
            # An expired timer wins over a late manual submit
            self.check_timers()
            if self.status == AttemptStatus.SUBMITTED:
                return self.summary
            if not self.can_submit():
                if self.settings.require_all_answered:
                    raise AttemptStateError('Please answer all questions before submitting.')
                raise AttemptStateError('Answer at least one question before submitting.')

        self.summary = ScoringService.score(self.questions)
        self.status = AttemptStatus.SUBMITTED
        self.auto_submitted = auto
        self.submitted_at = datetime.now(timezone.utc)
        logger.info(
            'Attempt on widget %s submitted%s: %s/%s (%s%%)',
            self.widget_id, ' automatically' if auto else '',
            self.summary.earned, self.summary.possible, self.summary.percentage
        )
        return self.summary

    def retake(self):
        """Clear every answer and reshuffle from the original order"""
        self.status = AttemptStatus.NOT_STARTED
        self.questions = self._build_working_set()
        self._reset_progress()

    def pause(self):
        if self.status != AttemptStatus.IN_PROGRESS:
            raise AttemptStateError(f'Cannot pause an attempt that is {self.status.value}')
        self.elapsed_before = self.elapsed_seconds()
        self.started_at = None
        self.status = AttemptStatus.PAUSED

    # ---------------- timers ----------------

    def elapsed_seconds(self):
        running = 0
        if self.status == AttemptStatus.IN_PROGRESS and self.started_at is not None:
            running = self.clock() - self.started_at
        return self.elapsed_before + running

    def total_time_seconds(self):
        if self.settings.time_limit and self.settings.time_limit > 0:
            return self.settings.time_limit * 60
        return None

    def remaining_time(self):
        """Seconds left on the overall timer, None when there is no timer"""
        total = self.total_time_seconds()
        if total is None:
            return None
        return max(0, int(math.ceil(total - self.elapsed_seconds())))

    def check_timers(self):
        """Auto-submit when the overall timer has run out. Returns True if it did."""
        if self.status != AttemptStatus.IN_PROGRESS:
            return False
        remaining = self.remaining_time()
        if remaining is not None and remaining <= 0:
            logger.info('Overall time limit reached on widget %s, auto-submitting', self.widget_id)
            self.submit(auto=True)
            return True
        return False

    def expire_overall_timer(self):
        """Client countdown reached zero; submit whatever has been answered"""
        if self.status != AttemptStatus.IN_PROGRESS:
            return self.summary
        if self.total_time_seconds() is None:
            raise AttemptStateError('This quiz has no overall time limit')
        return self.submit(auto=True)

    def expire_question(self, question_id):
        """
        Lock a question whose countdown ran out.
        Once every question is locked the attempt submits itself.
        """
        self._require_in_progress()
        question = self.get_question(question_id)
        if question is None:
            raise AttemptStateError(f'Question {question_id} is not part of this quiz')
        if self.question_time_limit(question) is None:
            raise AttemptStateError(f'Question {question_id} has no time limit')
        self.expired_questions.add(question_id)
        if len(self.expired_questions) >= len(self.questions):
            self.submit(auto=True)
        return question

    # ---------------- save / resume ----------------

    def to_progress_data(self, user):
        return {
            'userId': user.user_id,
            'userName': user.display_name,
            'quizTitle': self.settings.title,
            'widgetId': self.widget_id,
            'questions': [q.to_dict(include_selection=True) for q in self.questions],
            'currentPage': self.current_page,
            'currentCategory': self.current_category,
            'remainingTime': self.remaining_time(),
            'expiredQuestions': sorted(self.expired_questions),
            'answeredQuestions': self.answered_count(),
            'lastSaved': datetime.now(timezone.utc).isoformat(),
        }

    def apply_progress(self, saved_questions, data):
        """
        Merge restored answers into the live question definitions.
        Only ids present in both sets survive. Returns the number merged;
        on zero the attempt is left untouched.
        """
        live_by_id = {q.id: q for q in self.original_questions}
        merged = []
        for saved in saved_questions:
            live = live_by_id.get(saved.id)
            if live is None or any(m.id == saved.id for m in merged):
                continue
            question = live.copy()
            if self.settings.randomize_answers:
                _apply_choice_order(question, saved)
            question.selected = _restore_selection(question, saved.selected)
            merged.append(question)

        if not merged:
            return 0

        self._reset_progress()
        self.questions = merged
        self.status = AttemptStatus.IN_PROGRESS
        self.started_at = self.clock()

        total = self.total_time_seconds()
        remaining = data.get('remainingTime')
        if total is not None and isinstance(remaining, (int, float)) and not isinstance(remaining, bool):
            self.elapsed_before = max(0, total - max(0, remaining))

        category = data.get('currentCategory')
        if isinstance(category, str) and category in self.categories():
            self.current_category = category
        page = data.get('currentPage')
        if isinstance(page, int) and 1 <= page <= self.total_pages():
            self.current_page = page

        ids = {q.id for q in merged}
        expired = data.get('expiredQuestions') or []
        if isinstance(expired, list):
            self.expired_questions = {qid for qid in expired if qid in ids}
        return len(merged)

    # ---------------- views ----------------

    def question_view(self, question):
        """Question as shown to the quiz taker (no correctness flags)"""
        data = {
            'id': question.id,
            'title': question.title,
            'category': question.category,
            'type': question.type.value,
            'points': question.points,
            'selectedChoice': question.selected,
            'expired': question.id in self.expired_questions,
            'timeLimit': self.question_time_limit(question),
        }
        if question.type == QuestionType.MATCHING:
            data['leftItems'] = [{'id': p.id, 'text': p.left} for p in question.matching_pairs]
            data['rightItems'] = sorted(
                ({'id': p.id, 'text': p.right} for p in question.matching_pairs),
                key=lambda item: item['text'].lower()
            )
        else:
            data['choices'] = [
                {'id': c.id, 'text': c.text, 'image': c.image} for c in question.choices
            ]
        if question.code_snippet:
            data['codeSnippet'] = question.code_snippet
            data['codeLanguage'] = question.code_language
        return data

    def state_dict(self):
        data = {
            'widgetId': self.widget_id,
            'title': self.settings.title,
            'status': self.status.value,
            'currentPage': self.current_page,
            'totalPages': self.total_pages(),
            'currentCategory': self.current_category,
            'categories': self.categories(),
            'progress': self.progress(),
            'remainingTime': self.remaining_time(),
            'canSubmit': self.status == AttemptStatus.IN_PROGRESS and self.can_submit(),
            'questions': [self.question_view(q) for q in self.visible_questions()],
        }
        if self.status == AttemptStatus.SUBMITTED:
            data['autoSubmitted'] = self.auto_submitted
        return data


def _apply_choice_order(question, saved):
    position = {c.id: i for i, c in enumerate(saved.choices)}
    question.choices.sort(key=lambda c: position.get(c.id, len(position)))


def _restore_selection(question, selected):
    """Drop restored answers that point at choices which no longer exist"""
    if selected is None:
        return None
    choice_ids = {c.id for c in question.choices}
    if question.type in (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE):
        return selected if selected in choice_ids else None
    if question.type == QuestionType.MULTI_SELECT:
        if not isinstance(selected, list):
            return None
        kept = [s for s in selected if s in choice_ids]
        return kept or None
    return selected


class AttemptRegistry:
    """Process-local attempts keyed by (widget_id, user_id)"""

    @staticmethod
    def get(widget_id, user_id):
        return active_attempts.get((widget_id, user_id))

    @staticmethod
    def create(widget, user_id, rng=None, clock=None):
        attempt = Attempt(
            widget.id,
            AttemptSettings.from_widget(widget),
            widget.get_questions(),
            rng=rng,
            clock=clock,
        )
        active_attempts[(widget.id, user_id)] = attempt
        return attempt

    @staticmethod
    def get_or_create(widget, user_id):
        attempt = AttemptRegistry.get(widget.id, user_id)
        if attempt is None:
            attempt = AttemptRegistry.create(widget, user_id)
        return attempt

    @staticmethod
    def discard(widget_id, user_id):
        active_attempts.pop((widget_id, user_id), None)

    @staticmethod
    def discard_widget(widget_id):
        for key in [k for k in active_attempts if k[0] == widget_id]:
            del active_attempts[key]
