"""
Question Bank Service
Authoring operations on a widget's embedded question list:
validation, add/edit/delete, ordering
"""
import logging

from quizpart.models.question import CHOICE_TYPES, QuestionType
from quizpart.utils.helpers import now_utc

logger = logging.getLogger(__name__)

MIN_TIME_LIMIT = 5
MAX_TIME_LIMIT = 3600


def validate_question(question):
    """Inline validation messages for an authored question; empty when valid"""
    errors = []
    if not question.title.strip():
        errors.append('Question title is required.')
    if not question.category.strip():
        errors.append('Please select or enter a category.')

    filled = [c for c in question.choices if c.text.strip()]
    correct = [c for c in filled if c.is_correct]

    if question.type in (QuestionType.MULTIPLE_CHOICE, QuestionType.MULTI_SELECT):
        if len(filled) < 2:
            errors.append('At least 2 valid choices are required.')
        if not correct:
            errors.append('Please mark at least one choice as correct.')
        elif question.type == QuestionType.MULTIPLE_CHOICE and len(correct) > 1:
            errors.append('A multiple choice question can have only one correct choice.')
    elif question.type == QuestionType.TRUE_FALSE:
        if len(filled) != 2:
            errors.append('A true/false question needs exactly 2 choices.')
        if len(correct) != 1:
            errors.append('Please mark exactly one choice as correct.')
    elif question.type == QuestionType.SHORT_ANSWER:
        if not (question.correct_answer or '').strip():
            errors.append('Please enter the correct answer for the short answer question.')
    elif question.type == QuestionType.MATCHING:
        if len(question.matching_pairs) < 2:
            errors.append('At least 2 matching pairs are required.')
        if any(not p.left.strip() or not p.right.strip() for p in question.matching_pairs):
            errors.append('All matching pairs must have both left and right items.')

    if isinstance(question.points, bool) or not isinstance(question.points, (int, float)) or question.points <= 0:
        errors.append('Points must be a positive number.')
    if question.time_limit is not None and not MIN_TIME_LIMIT <= question.time_limit <= MAX_TIME_LIMIT:
        errors.append('Time limit must be between 5 seconds and 3600 seconds (1 hour).')
    return errors


def clean_question(question):
    """Drop empty choices and trim text fields of a validated question"""
    question.title = question.title.strip()
    question.category = question.category.strip()
    if question.type in CHOICE_TYPES:
        question.choices = [c for c in question.choices if c.text.strip()]
    else:
        question.choices = []
    if question.type != QuestionType.MATCHING:
        question.matching_pairs = []
    if question.type != QuestionType.SHORT_ANSWER:
        question.correct_answer = None
    if question.explanation is not None:
        question.explanation = question.explanation.strip() or None
    question.selected = None
    return question


def new_question_id(questions):
    return max((q.id for q in questions), default=0) + 1


def add_or_update(questions, question):
    """Replace the question with the same id, or append it. Returns the new list."""
    question.last_modified = now_utc().isoformat()
    updated = []
    replaced = False
    for existing in questions:
        if existing.id == question.id:
            updated.append(question)
            replaced = True
        else:
            updated.append(existing)
    if not replaced:
        updated.append(question)
    return updated


def delete(questions, question_id):
    return [q for q in questions if q.id != question_id]


def delete_all(questions):
    """Empty the bank"""
    if questions:
        logger.info('Deleting all %s questions from the bank', len(questions))
    return []


def append_imported(questions, imported):
    """Add imported questions, renumbering ids that clash with the bank"""
    result = list(questions)
    taken = {q.id for q in result}
    for question in imported:
        if question.id in taken:
            question.id = new_question_id(result)
        taken.add(question.id)
        result.append(question)
    return result


def reorder_categories(questions, order):
    """Stable sort of the bank by category order; unknown categories last"""
    rank = {name: i for i, name in enumerate(order)}
    return sorted(questions, key=lambda q: rank.get(q.category, len(rank)))


def move_question(questions, question_id, direction):
    """Move a question one slot up (-1) or down (+1) in the bank"""
    updated = list(questions)
    index = next((i for i, q in enumerate(updated) if q.id == question_id), None)
    if index is None:
        raise KeyError(question_id)
    target = index + direction
    if 0 <= target < len(updated):
        updated[index], updated[target] = updated[target], updated[index]
    return updated


def category_counts(questions):
    counts = {}
    for question in questions:
        if question.category:
            counts[question.category] = counts.get(question.category, 0) + 1
    return counts
