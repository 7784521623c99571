"""
Question Model
Questions are embedded in the widget configuration as JSON,
so these are plain dataclasses rather than database tables
"""
import copy
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from quizpart.errors import QuestionFormatError

logger = logging.getLogger(__name__)

class QuestionType(str, Enum):
    MULTIPLE_CHOICE = 'multipleChoice'
    TRUE_FALSE = 'trueFalse'
    MULTI_SELECT = 'multiSelect'
    SHORT_ANSWER = 'shortAnswer'
    MATCHING = 'matching'


CHOICE_TYPES = (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE, QuestionType.MULTI_SELECT)


def new_choice_id():
    return str(uuid.uuid4())


@dataclass
class Choice:
    id: str
    text: str
    is_correct: bool = False
    image: Optional[str] = None

    def to_dict(self):
        data = {'id': self.id, 'text': self.text, 'isCorrect': self.is_correct}
        if self.image:
            data['image'] = self.image
        return data


@dataclass
class MatchingPair:
    id: str
    left: str
    right: str

    def to_dict(self):
        return {'id': self.id, 'left': self.left, 'right': self.right}


@dataclass
class Question:
    id: int
    title: str
    category: str = ''
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    choices: List[Choice] = field(default_factory=list)
    correct_answer: Optional[str] = None
    case_sensitive: bool = False
    matching_pairs: List[MatchingPair] = field(default_factory=list)
    points: float = 1
    time_limit: Optional[int] = None
    explanation: Optional[str] = None
    code_snippet: Optional[str] = None
    code_language: Optional[str] = None
    last_modified: Optional[str] = None

    # In-attempt answer, never part of the authored bank
    selected: object = None

    @property
    def is_answered(self):
        return self.selected is not None

    def correct_choices(self):
        return [c for c in self.choices if c.is_correct]

    def copy(self):
        return copy.deepcopy(self)

    def to_dict(self, include_selection=False):
        """Serialize to the camelCase form stored in the widget configuration"""
        data = {
            'id': self.id,
            'title': self.title,
            'category': self.category,
            'type': self.type.value,
            'choices': [c.to_dict() for c in self.choices],
            'points': self.points,
        }
        if self.correct_answer is not None:
            data['correctAnswer'] = self.correct_answer
            data['caseSensitive'] = self.case_sensitive
        if self.matching_pairs:
            data['matchingPairs'] = [p.to_dict() for p in self.matching_pairs]
        optional = {
            'timeLimit': self.time_limit,
            'explanation': self.explanation,
            'codeSnippet': self.code_snippet,
            'codeLanguage': self.code_language,
            'lastModified': self.last_modified,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        if include_selection and self.selected is not None:
            data['selectedChoice'] = self.selected
        return data

    @classmethod
    def from_dict(cls, data, strict=True):
        """
        Build a question from its JSON form.
        Raises QuestionFormatError when the structure is wrong,
        or returns None when strict is False.
        """
        try:
            return cls._parse(data)
        except QuestionFormatError:
            if strict:
                raise
            return None

    @classmethod
    def _parse(cls, data):
        if not isinstance(data, dict):
            raise QuestionFormatError('Question must be an object')

        question_id = _parse_id(data.get('id'))

        title = data.get('title')
        if not isinstance(title, str):
            raise QuestionFormatError(f'Question {question_id}: title must be a string')

        try:
            question_type = QuestionType(data.get('type') or QuestionType.MULTIPLE_CHOICE.value)
        except ValueError:
            raise QuestionFormatError(f"Question {question_id}: unknown type {data.get('type')!r}")

        raw_choices = data.get('choices') or []
        if not isinstance(raw_choices, list):
            raise QuestionFormatError(f'Question {question_id}: choices must be a list')
        choices = [_parse_choice(question_id, c) for c in raw_choices]

        raw_pairs = data.get('matchingPairs') or []
        if not isinstance(raw_pairs, list):
            raise QuestionFormatError(f'Question {question_id}: matchingPairs must be a list')
        pairs = [_parse_pair(question_id, p) for p in raw_pairs]

        points = data.get('points', 1)
        if points is None:
            points = 1
        if isinstance(points, bool) or not isinstance(points, (int, float)):
            raise QuestionFormatError(f'Question {question_id}: points must be a number')

        time_limit = data.get('timeLimit')
        if time_limit is not None and (isinstance(time_limit, bool) or not isinstance(time_limit, int)):
            raise QuestionFormatError(f'Question {question_id}: timeLimit must be an integer')

        correct_answer = data.get('correctAnswer')
        if correct_answer is not None and not isinstance(correct_answer, str):
            correct_answer = str(correct_answer)

        return cls(
            id=question_id,
            title=title,
            category=str(data.get('category') or ''),
            type=question_type,
            choices=choices,
            correct_answer=correct_answer,
            case_sensitive=bool(data.get('caseSensitive', False)),
            matching_pairs=pairs,
            points=points,
            time_limit=time_limit,
            explanation=data.get('explanation'),
            code_snippet=data.get('codeSnippet'),
            code_language=data.get('codeLanguage'),
            last_modified=data.get('lastModified'),
            selected=data.get('selectedChoice'),
        )


def _parse_id(value):
    if isinstance(value, bool):
        raise QuestionFormatError('Question id must be a number')
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise QuestionFormatError(f'Question id must be a number, got {value!r}')


def _parse_choice(question_id, data):
    if not isinstance(data, dict):
        raise QuestionFormatError(f'Question {question_id}: choice must be an object')
    choice_id = data.get('id')
    text = data.get('text')
    if not isinstance(choice_id, (str, int)) or isinstance(choice_id, bool) or choice_id == '':
        raise QuestionFormatError(f'Question {question_id}: choice id is missing')
    if not isinstance(text, str):
        raise QuestionFormatError(f'Question {question_id}: choice text must be a string')
    return Choice(
        id=str(choice_id),
        text=text,
        is_correct=bool(data.get('isCorrect', False)),
        image=data.get('image'),
    )


def _parse_pair(question_id, data):
    if not isinstance(data, dict):
        raise QuestionFormatError(f'Question {question_id}: matching pair must be an object')
    # Older configurations stored leftItem / rightItem
    left = data.get('left', data.get('leftItem'))
    right = data.get('right', data.get('rightItem'))
    pair_id = data.get('id')
    if not isinstance(pair_id, str) or not pair_id:
        raise QuestionFormatError(f'Question {question_id}: matching pair id is missing')
    if not isinstance(left, str) or not isinstance(right, str):
        raise QuestionFormatError(f'Question {question_id}: matching pair needs left and right text')
    return MatchingPair(id=pair_id, left=left, right=right)


def is_valid_question_dict(data):
    """Structural check used before trusting restored or imported data"""
    return Question.from_dict(data, strict=False) is not None


def questions_from_json_list(items):
    """Parse a list of question dicts, skipping anything malformed"""
    questions = []
    for item in items or []:
        try:
            questions.append(Question.from_dict(item))
        except QuestionFormatError as exc:
            logger.warning('Skipping stored question: %s', exc)
    return questions
