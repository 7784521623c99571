import pytest

from quizpart import create_app
from quizpart.extensions import active_attempts, db
from quizpart.models import QuizWidget
from quizpart.models.question import Choice, MatchingPair, Question, QuestionType

USER_HEADERS = {
    'X-User-Id': 'i:0#.f|membership|ana@contoso.com',
    'X-User-Name': 'Ana Lopez',
    'X-User-Email': 'ana@contoso.com',
}


class FakeClock:
    """Manually advanced replacement for time.time"""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def build_questions():
    return [
        Question(
            id=1, title='Capital of France?', category='Geography',
            type=QuestionType.MULTIPLE_CHOICE, points=2,
            choices=[
                Choice(id='a', text='Berlin'),
                Choice(id='b', text='Paris', is_correct=True),
                Choice(id='c', text='Madrid'),
            ],
            explanation='Paris has been the capital since 987.',
        ),
        Question(
            id=2, title='Water boils at 100C at sea level.', category='Science',
            type=QuestionType.TRUE_FALSE,
            choices=[
                Choice(id='true', text='True', is_correct=True),
                Choice(id='false', text='False'),
            ],
        ),
        Question(
            id=3, title='Pick the noble gases', category='Science',
            type=QuestionType.MULTI_SELECT,
            choices=[
                Choice(id='x', text='Neon', is_correct=True),
                Choice(id='y', text='Oxygen'),
                Choice(id='z', text='Argon', is_correct=True),
            ],
        ),
        Question(
            id=4, title='Largest ocean?', category='Geography',
            type=QuestionType.SHORT_ANSWER, correct_answer='Pacific',
        ),
        Question(
            id=5, title='Match the country to its capital', category='Geography',
            type=QuestionType.MATCHING,
            matching_pairs=[
                MatchingPair(id='p1', left='Spain', right='Madrid'),
                MatchingPair(id='p2', left='Italy', right='Rome'),
                MatchingPair(id='p3', left='Peru', right='Lima'),
            ],
        ),
    ]


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
    active_attempts.clear()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def questions():
    return build_questions()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_widget(app):
    def factory(questions=None, **settings):
        widget = QuizWidget(title=settings.pop('title', 'General Knowledge'), **settings)
        widget.set_questions(build_questions() if questions is None else questions)
        db.session.add(widget)
        db.session.commit()
        return widget
    return factory
