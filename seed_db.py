# seed_db.py
"""
Create the tables and a sample quiz widget to try the API against
"""
import logging
import sys

from quizpart import create_app
from quizpart.extensions import db
from quizpart.models import QuizWidget
from quizpart.models.widget import sample_questions

logger = logging.getLogger('quizpart.seed')


def seed_database(title='Sample Quiz'):
    """Add a widget with the starter questions unless one with the title exists"""
    app = create_app()

    with app.app_context():
        db.create_all()

        existing = QuizWidget.query.filter_by(title=title).first()
        if existing:
            logger.info('Widget %r already exists (id %s), nothing to do', title, existing.id)
            return existing.id

        widget = QuizWidget(title=title, passing_score=70, enable_progress_saving=True)
        widget.set_questions(sample_questions())
        db.session.add(widget)
        db.session.commit()
        logger.info('Created widget %r with id %s', title, widget.id)
        return widget.id


if __name__ == '__main__':
    seed_database(sys.argv[1] if len(sys.argv) > 1 else 'Sample Quiz')
