"""
Question Import / Export
Bulk editing formats for the question bank: CSV with header-driven
column detection and a JSON array of question objects.
Bad rows are rejected one by one, the rest of the file still imports.
"""
import csv
import io
import json
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List

from quizpart.errors import QuestionFormatError
from quizpart.models.question import (
    CHOICE_TYPES, Choice, MatchingPair, Question, QuestionType, new_choice_id
)
from quizpart.services.question_bank import clean_question, validate_question

logger = logging.getLogger(__name__)

TYPE_ALIASES = {
    'multiplechoice': QuestionType.MULTIPLE_CHOICE,
    'truefalse': QuestionType.TRUE_FALSE,
    'true/false': QuestionType.TRUE_FALSE,
    'multiselect': QuestionType.MULTI_SELECT,
    'shortanswer': QuestionType.SHORT_ANSWER,
    'matching': QuestionType.MATCHING,
}


@dataclass
class ImportResult:
    questions: List[Question] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'imported': len(self.questions),
            'errors': self.errors,
            'questions': [q.to_dict() for q in self.questions],
        }


def parse_type(value):
    key = (value or '').strip().lower().replace(' ', '').replace('_', '').replace('-', '')
    if not key:
        return QuestionType.MULTIPLE_CHOICE
    if key not in TYPE_ALIASES:
        raise QuestionFormatError(f'unknown question type {value!r}')
    return TYPE_ALIASES[key]


def _correct_flags(options, correct_answer):
    """Which options the Correct Answer cell marks: exact text first, then 1-based indices"""
    answer = (correct_answer or '').strip()
    if not answer:
        return [False] * len(options)
    if any(opt == answer for opt in options):
        return [opt == answer for opt in options]
    indices = {part.strip() for part in answer.split(',')}
    return [str(i + 1) in indices for i in range(len(options))]


def _build_choices(qtype, cells, correct_answer):
    """Choices from the option cells; indices count columns, blank cells included"""
    if qtype == QuestionType.TRUE_FALSE and not any(cells):
        cells = ['True', 'False']
        answer = (correct_answer or '').strip().lower()
        flags = [answer in ('true', '1'), answer in ('false', '2')]
    else:
        flags = _correct_flags(cells, correct_answer)
    return [
        Choice(id=new_choice_id(), text=text, is_correct=flag)
        for text, flag in zip(cells, flags)
        if text
    ]


def _build_pairs(options):
    pairs = []
    for option in options:
        if '=' not in option:
            raise QuestionFormatError(f'matching option {option!r} must look like left=right')
        left, right = option.split('=', 1)
        pairs.append(MatchingPair(id=new_choice_id(), left=left.strip(), right=right.strip()))
    return pairs


def _parse_points(value):
    if value is None or not str(value).strip():
        return 1
    try:
        points = float(value)
    except ValueError:
        raise QuestionFormatError(f'points {value!r} is not a number')
    return int(points) if points.is_integer() else points


def parse_csv(text, default_category=None, start_id=1):
    """Parse CSV text into questions; header names pick the columns"""
    result = ImportResult()
    reader = csv.reader(io.StringIO(text.lstrip('\ufeff')))
    try:
        headers = next(reader)
    except StopIteration:
        result.errors.append('The CSV file is empty.')
        return result

    normalized = [h.strip().lower() for h in headers]

    def column(name):
        return normalized.index(name) if name in normalized else None

    question_col = column('question')
    category_col = column('category')
    type_col = column('type')
    correct_col = column('correct answer')
    explanation_col = column('explanation')
    points_col = column('points')
    option_cols = [i for i, h in enumerate(normalized) if h.startswith('option')]

    if question_col is None:
        result.errors.append('The CSV header must include a "Question" column.')
        return result

    def cell(row, index):
        if index is None or index >= len(row):
            return ''
        return row[index].strip()

    next_id = start_id
    for row_number, row in enumerate(reader, start=2):
        if not any(value.strip() for value in row):
            continue
        try:
            qtype = parse_type(cell(row, type_col))
            cells = [cell(row, i) for i in option_cols]
            correct_answer = cell(row, correct_col)

            question = Question(
                id=next_id,
                title=cell(row, question_col),
                category=cell(row, category_col) or (default_category or ''),
                type=qtype,
                points=_parse_points(cell(row, points_col)),
                explanation=cell(row, explanation_col) or None,
            )
            if qtype in CHOICE_TYPES:
                question.choices = _build_choices(qtype, cells, correct_answer)
            elif qtype == QuestionType.SHORT_ANSWER:
                question.correct_answer = correct_answer
            else:
                question.matching_pairs = _build_pairs([c for c in cells if c])
        except QuestionFormatError as exc:
            result.errors.append(f'Row {row_number}: {exc}')
            continue

        problems = validate_question(question)
        if problems:
            result.errors.append(f'Row {row_number}: {" ".join(problems)}')
            continue
        result.questions.append(clean_question(question))
        next_id += 1

    if result.errors:
        logger.info('CSV import rejected %s rows', len(result.errors))
    return result


def normalize_question_item(item, fallback_id, default_category):
    """Fill generated ids and defaults so an authored or imported object parses"""
    if not isinstance(item, dict):
        raise QuestionFormatError('each question must be an object')
    data = dict(item)
    data.pop('selectedChoice', None)
    if data.get('id') in (None, ''):
        data['id'] = fallback_id
    if not data.get('category') and default_category:
        data['category'] = default_category
    if 'title' not in data or data['title'] is None:
        data['title'] = ''
    choices = data.get('choices')
    if isinstance(choices, list):
        data['choices'] = [
            {
                'id': c.get('id') or new_choice_id(),
                'text': c.get('text') or '',
                'isCorrect': bool(c.get('isCorrect')),
                'image': c.get('image'),
            } if isinstance(c, dict) else c
            for c in choices
        ]
    pairs = data.get('matchingPairs')
    if isinstance(pairs, list):
        data['matchingPairs'] = [
            dict(p, id=p.get('id') or new_choice_id()) if isinstance(p, dict) else p
            for p in pairs
        ]
    return data


def parse_json(text, default_category=None, start_id=1):
    """Parse a JSON array of question objects"""
    result = ImportResult()
    try:
        items = json.loads(text)
    except ValueError as exc:
        result.errors.append(f'Error parsing JSON: {exc}')
        return result
    if not isinstance(items, list):
        result.errors.append('The JSON file must contain an array of questions.')
        return result

    next_id = start_id
    seen_ids = set()
    for position, item in enumerate(items, start=1):
        try:
            question = Question.from_dict(normalize_question_item(item, next_id, default_category))
        except QuestionFormatError as exc:
            result.errors.append(f'Item {position}: {exc}')
            continue
        problems = validate_question(question)
        if problems:
            result.errors.append(f'Item {position}: {" ".join(problems)}')
            continue
        if question.id in seen_ids:
            question.id = max(seen_ids) + 1
        seen_ids.add(question.id)
        next_id = max(next_id, question.id) + 1
        result.questions.append(clean_question(question))
    return result


def export_json(questions):
    return json.dumps([q.to_dict() for q in questions], indent=2)


def _csv_correct_answer(question):
    if question.type in CHOICE_TYPES:
        return ','.join(str(i + 1) for i, c in enumerate(question.choices) if c.is_correct)
    if question.type == QuestionType.SHORT_ANSWER:
        return question.correct_answer or ''
    return ''


def _csv_options(question):
    if question.type == QuestionType.MATCHING:
        return [f'{p.left}={p.right}' for p in question.matching_pairs]
    return [c.text for c in question.choices]


def export_csv(questions):
    """CSV in the same layout parse_csv reads"""
    width = max((len(_csv_options(q)) for q in questions), default=0)
    width = max(width, 2)
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator='\n')
    writer.writerow(
        ['Question', 'Category', 'Type']
        + [f'Option {i}' for i in range(1, width + 1)]
        + ['Correct Answer', 'Explanation', 'Points']
    )
    for question in questions:
        options = _csv_options(question)
        options += [''] * (width - len(options))
        writer.writerow(
            [question.title, question.category, question.type.value]
            + options
            + [_csv_correct_answer(question), question.explanation or '', question.points]
        )
    return output.getvalue()


def export_filename(fmt, today=None):
    today = today or date.today()
    return f'quiz-questions-{today.isoformat()}.{fmt}'
