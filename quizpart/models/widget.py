"""
Quiz Widget Model
One configured quiz on a portal page: display options, messages,
timers, webhook settings and the embedded question bank
"""
import json
from datetime import datetime, timezone

from quizpart.extensions import db
from quizpart.models.question import Question, questions_from_json_list


def now_utc():
    return datetime.now(timezone.utc)


DEFAULT_MESSAGES = {
    'success_message': 'Your score has been successfully recorded!',
    'excellent_score_message': 'Excellent! You have mastered this topic!',
    'good_score_message': 'Good job! You have a solid understanding.',
    'average_score_message': "Not bad. There's room for improvement.",
    'poor_score_message': "Keep studying. You'll get better with practice.",
    'error_message': 'An error occurred. Please try again later.',
    'results_saved_message': 'Your score has been successfully saved!',
}

QUESTIONS_PER_PAGE_OPTIONS = (1, 3, 5, 10)

# attribute -> (settings key, kind)
SETTINGS_FIELDS = {
    'title': ('title', str),
    'questions_per_page': ('questionsPerPage', int),
    'success_message': ('successMessage', str),
    'excellent_score_message': ('excellentScoreMessage', str),
    'good_score_message': ('goodScoreMessage', str),
    'average_score_message': ('averageScoreMessage', str),
    'poor_score_message': ('poorScoreMessage', str),
    'error_message': ('errorMessage', str),
    'results_saved_message': ('resultsSavedMessage', str),
    'show_progress_indicator': ('showProgressIndicator', bool),
    'randomize_questions': ('randomizeQuestions', bool),
    'randomize_answers': ('randomizeAnswers', bool),
    'require_all_answered': ('requireAllAnswered', bool),
    'passing_score': ('passingScore', int),
    'time_limit': ('timeLimit', int),
    'enable_question_time_limit': ('enableQuestionTimeLimit', bool),
    'default_question_time_limit': ('defaultQuestionTimeLimit', int),
    'results_list_name': ('resultsListName', str),
    'progress_list_name': ('progressListName', str),
    'enable_progress_saving': ('enableProgressSaving', bool),
    'webhook_enabled': ('webhookEnabled', bool),
    'webhook_url': ('webhookUrl', str),
    'webhook_method': ('webhookMethod', str),
    'webhook_threshold': ('webhookThreshold', int),
    'webhook_headers': ('webhookHeaders', str),
    'webhook_timeout': ('webhookTimeout', int),
    'webhook_include_user_data': ('webhookIncludeUserData', bool),
}


class QuizWidget(db.Model):
    """Quiz widget configuration"""
    __tablename__ = 'quiz_widget'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False, default='Quiz')
    questions_per_page = db.Column(db.Integer, default=5)

    # Messages
    success_message = db.Column(db.Text, default=DEFAULT_MESSAGES['success_message'])
    excellent_score_message = db.Column(db.Text, default=DEFAULT_MESSAGES['excellent_score_message'])
    good_score_message = db.Column(db.Text, default=DEFAULT_MESSAGES['good_score_message'])
    average_score_message = db.Column(db.Text, default=DEFAULT_MESSAGES['average_score_message'])
    poor_score_message = db.Column(db.Text, default=DEFAULT_MESSAGES['poor_score_message'])
    error_message = db.Column(db.Text, default=DEFAULT_MESSAGES['error_message'])
    results_saved_message = db.Column(db.Text, default=DEFAULT_MESSAGES['results_saved_message'])

    # Behaviour toggles
    show_progress_indicator = db.Column(db.Boolean, default=True)
    randomize_questions = db.Column(db.Boolean, default=False)
    randomize_answers = db.Column(db.Boolean, default=False)
    require_all_answered = db.Column(db.Boolean, default=False)

    # Scoring / timers. NULL or 0 time_limit means no overall timer (minutes)
    passing_score = db.Column(db.Integer, default=70)
    time_limit = db.Column(db.Integer, nullable=True)
    enable_question_time_limit = db.Column(db.Boolean, default=False)
    default_question_time_limit = db.Column(db.Integer, default=60)

    # Storage
    results_list_name = db.Column(db.String(100), default='QuizResults')
    progress_list_name = db.Column(db.String(100), default='QuizProgress')
    enable_progress_saving = db.Column(db.Boolean, default=True)

    # Webhook
    webhook_enabled = db.Column(db.Boolean, default=False)
    webhook_url = db.Column(db.Text)
    webhook_method = db.Column(db.String(10), default='POST')
    webhook_threshold = db.Column(db.Integer, default=80)
    webhook_headers = db.Column(db.Text)
    webhook_timeout = db.Column(db.Integer, default=30)
    webhook_include_user_data = db.Column(db.Boolean, default=True)

    # Embedded question bank (JSON list) and category order (JSON list)
    questions_json = db.Column(db.Text, default='[]')
    category_order_json = db.Column(db.Text, default='[]')

    created_at = db.Column(db.DateTime, default=now_utc)
    updated_at = db.Column(db.DateTime, default=now_utc, onupdate=now_utc)

    def __repr__(self):
        return f'<QuizWidget {self.id}: {self.title}>'

    # ---------------- questions ----------------

    def get_questions(self):
        """Authored questions, malformed entries skipped"""
        try:
            items = json.loads(self.questions_json or '[]')
        except ValueError:
            return []
        if not isinstance(items, list):
            return []
        return questions_from_json_list(items)

    def set_questions(self, questions):
        self.questions_json = json.dumps([q.to_dict() for q in questions])

    def get_category_order(self):
        try:
            order = json.loads(self.category_order_json or '[]')
        except ValueError:
            return []
        return [c for c in order if isinstance(c, str)] if isinstance(order, list) else []

    def set_category_order(self, order):
        self.category_order_json = json.dumps(list(order))

    def categories(self, questions=None):
        """
        Distinct categories in display order.
        Stored order first, then any category not yet ordered, in bank order.
        """
        if questions is None:
            questions = self.get_questions()
        present = []
        for q in questions:
            if q.category and q.category not in present:
                present.append(q.category)
        ordered = [c for c in self.get_category_order() if c in present]
        return ordered + [c for c in present if c not in ordered]

    # ---------------- settings ----------------

    def has_overall_timer(self):
        return bool(self.time_limit and self.time_limit > 0)

    def score_message(self, percentage):
        """Message for the score band the percentage falls in"""
        if percentage >= 90:
            return self.excellent_score_message or DEFAULT_MESSAGES['excellent_score_message']
        if percentage >= 70:
            return self.good_score_message or DEFAULT_MESSAGES['good_score_message']
        if percentage >= 50:
            return self.average_score_message or DEFAULT_MESSAGES['average_score_message']
        return self.poor_score_message or DEFAULT_MESSAGES['poor_score_message']

    def to_settings_dict(self):
        data = {'id': self.id}
        for attr, (key, _) in SETTINGS_FIELDS.items():
            data[key] = getattr(self, attr)
        data['categories'] = self.categories()
        data['questionCount'] = len(self.get_questions())
        return data

    def update_settings(self, data):
        """
        Apply configuration values from a settings payload.
        Returns a list of validation messages; nothing is applied if any.
        """
        errors = []
        updates = {}
        for attr, (key, kind) in SETTINGS_FIELDS.items():
            if key not in data:
                continue
            value = data[key]
            if value is None or value == '':
                updates[attr] = None if kind is not str else ''
                continue
            if kind is bool:
                if isinstance(value, str):
                    value = value.strip().lower() in ('true', '1', 'on', 'yes')
                updates[attr] = bool(value)
            elif kind is int:
                try:
                    updates[attr] = int(value)
                except (TypeError, ValueError):
                    errors.append(f'{key} must be a whole number')
            else:
                updates[attr] = str(value)

        if updates.get('title') == '':
            errors.append('title is required')
        per_page = updates.get('questions_per_page')
        if per_page is not None and per_page not in QUESTIONS_PER_PAGE_OPTIONS:
            errors.append(f'questionsPerPage must be one of {list(QUESTIONS_PER_PAGE_OPTIONS)}')
        for attr in ('passing_score', 'webhook_threshold'):
            value = updates.get(attr)
            if value is not None and not 0 <= value <= 100:
                errors.append(f'{SETTINGS_FIELDS[attr][0]} must be between 0 and 100')
        for attr in ('time_limit', 'webhook_timeout', 'default_question_time_limit'):
            value = updates.get(attr)
            if value is not None and value < 0:
                errors.append(f'{SETTINGS_FIELDS[attr][0]} cannot be negative')
        method = updates.get('webhook_method')
        if method and method.upper() not in ('POST', 'PUT', 'PATCH', 'GET'):
            errors.append('webhookMethod must be POST, PUT, PATCH or GET')

        if errors:
            return errors
        for attr, value in updates.items():
            setattr(self, attr, value)
        return []


def sample_questions():
    """Starter questions for a freshly created widget"""
    return [
        Question.from_dict({
            'id': 1,
            'title': 'What is a content management system used for?',
            'category': 'Basics',
            'type': 'multipleChoice',
            'choices': [
                {'id': '1', 'text': 'Storing and organising documents', 'isCorrect': True},
                {'id': '2', 'text': 'Writing compilers', 'isCorrect': False},
                {'id': '3', 'text': 'Cooling servers', 'isCorrect': False},
                {'id': '4', 'text': 'Routing network packets', 'isCorrect': False},
            ],
        }),
        Question.from_dict({
            'id': 2,
            'title': 'A quiz can mix several question types.',
            'category': 'Basics',
            'type': 'trueFalse',
            'choices': [
                {'id': 'true', 'text': 'True', 'isCorrect': True},
                {'id': 'false', 'text': 'False', 'isCorrect': False},
            ],
        }),
    ]
