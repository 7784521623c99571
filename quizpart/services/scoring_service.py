"""
Scoring Service
Per-type correctness checks and point aggregation for an attempt
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from quizpart.models.question import QuestionType

logger = logging.getLogger(__name__)


@dataclass
class ScoreSummary:
    earned: float
    possible: float
    percentage: int
    answered: int
    total_questions: int
    correct_count: int

    def to_dict(self):
        return {
            'score': self.earned,
            'totalPoints': self.possible,
            'percentage': self.percentage,
            'answered': self.answered,
            'totalQuestions': self.total_questions,
            'correctCount': self.correct_count,
        }


def question_points(question):
    points = question.points
    if isinstance(points, bool) or not isinstance(points, (int, float)) or points <= 0:
        return 1
    return points


def score_percentage(earned, possible):
    """round(earned / possible * 100), half-up, 0 when nothing is possible"""
    if not possible:
        return 0
    ratio = Decimal(str(earned)) * 100 / Decimal(str(possible))
    return int(ratio.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def matching_token(left_id, right_id):
    return f'{left_id}:{right_id}'


class ScoringService:
    """Service for scoring answers"""

    @staticmethod
    def is_correct(question, selected=None):
        """
        Check a selected answer against the question.
        Unanswered or oddly shaped answers are incorrect, never an error.
        """
        if selected is None:
            selected = question.selected
        if selected is None:
            return False

        qtype = question.type
        if qtype in (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE):
            return ScoringService._check_single_choice(question, selected)
        if qtype == QuestionType.MULTI_SELECT:
            return ScoringService._check_multi_select(question, selected)
        if qtype == QuestionType.SHORT_ANSWER:
            return ScoringService._check_short_answer(question, selected)
        if qtype == QuestionType.MATCHING:
            return ScoringService._check_matching(question, selected)

        logger.warning('Question %s has unsupported type %r', question.id, qtype)
        return False

    @staticmethod
    def _check_single_choice(question, selected):
        if not isinstance(selected, str):
            return False
        return any(c.id == selected and c.is_correct for c in question.choices)

    @staticmethod
    def _check_multi_select(question, selected):
        if not isinstance(selected, (list, tuple, set)):
            return False
        if not all(isinstance(s, str) for s in selected):
            return False
        correct_ids = {c.id for c in question.choices if c.is_correct}
        if not correct_ids:
            return False
        return set(selected) == correct_ids

    @staticmethod
    def _check_short_answer(question, selected):
        if not isinstance(selected, str) or not isinstance(question.correct_answer, str):
            return False
        expected = question.correct_answer.strip()
        if not expected:
            return False
        given = selected.strip()
        if question.case_sensitive:
            return given == expected
        return given.lower() == expected.lower()

    @staticmethod
    def _check_matching(question, selected):
        if not question.matching_pairs:
            return False
        if not isinstance(selected, (list, tuple)):
            return False

        chosen = {}
        for token in selected:
            if not isinstance(token, str) or token.count(':') != 1:
                return False
            left_id, right_id = token.split(':')
            if chosen.get(left_id, right_id) != right_id:
                return False
            chosen[left_id] = right_id

        expected = {pair.id: pair.id for pair in question.matching_pairs}
        return chosen == expected

    @staticmethod
    def score(questions):
        """Aggregate points over every question in the attempt"""
        earned = 0
        possible = 0
        answered = 0
        correct_count = 0
        for question in questions:
            points = question_points(question)
            possible += points
            if question.is_answered:
                answered += 1
            if ScoringService.is_correct(question):
                earned += points
                correct_count += 1

        return ScoreSummary(
            earned=earned,
            possible=possible,
            percentage=score_percentage(earned, possible),
            answered=answered,
            total_questions=len(questions),
            correct_count=correct_count,
        )

    @staticmethod
    def passed(percentage, passing_score):
        if passing_score is None:
            return True
        return percentage >= passing_score

    @staticmethod
    def correct_answer_text(question):
        """Human readable correct answer for the results view"""
        qtype = question.type
        if qtype in (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE):
            correct = question.correct_choices()
            return correct[0].text if correct else None
        if qtype == QuestionType.MULTI_SELECT:
            texts = [c.text for c in question.correct_choices()]
            return texts or None
        if qtype == QuestionType.SHORT_ANSWER:
            return question.correct_answer
        if qtype == QuestionType.MATCHING:
            pairs = [f'{p.left} = {p.right}' for p in question.matching_pairs]
            return pairs or None
        return None

    @staticmethod
    def question_results(questions):
        """Per-question detail for the results view and the result record"""
        results = []
        for question in questions:
            points = question_points(question)
            is_correct = ScoringService.is_correct(question)
            results.append({
                'id': question.id,
                'title': question.title,
                'type': question.type.value,
                'userAnswer': question.selected,
                'correctAnswer': ScoringService.correct_answer_text(question),
                'isCorrect': is_correct,
                'points': points,
                'earnedPoints': points if is_correct else 0,
                'explanation': question.explanation,
            })
        return results
