"""
Models Package
Exports the database models and the embedded question types
"""
from quizpart.models.widget import QuizWidget
from quizpart.models.list_item import ListItem
from quizpart.models.question import Question, Choice, MatchingPair, QuestionType

__all__ = ['QuizWidget', 'ListItem', 'Question', 'Choice', 'MatchingPair', 'QuestionType']
