"""
Authoring Routes
Widget settings and the embedded question bank:
CRUD, preview, ordering, bulk import and export
"""
import logging

from flask import Blueprint, Response, current_app, jsonify, request

from quizpart.errors import QuestionFormatError
from quizpart.extensions import db
from quizpart.models import Question, QuizWidget
from quizpart.models.widget import sample_questions
from quizpart.services import import_export, question_bank
from quizpart.services.attempt_service import Attempt, AttemptRegistry, AttemptSettings
from quizpart.services.scoring_service import ScoringService
from quizpart.utils import get_json_body, json_error

logger = logging.getLogger(__name__)

authoring_bp = Blueprint('authoring', __name__)


def _save_bank(widget, questions):
    widget.set_questions(questions)
    db.session.commit()
    # Live attempts were built from the old bank
    AttemptRegistry.discard_widget(widget.id)


def _question_from_payload(data, question_id):
    """Parse and validate an authored question; returns (question, errors)"""
    try:
        item = import_export.normalize_question_item(data, question_id, None)
        item['id'] = question_id
        question = Question.from_dict(item)
    except QuestionFormatError as exc:
        return None, [str(exc)]
    errors = question_bank.validate_question(question)
    if errors:
        return None, errors
    return question_bank.clean_question(question), []


def _bank_payload(widget, questions=None):
    if questions is None:
        questions = widget.get_questions()
    return {
        'success': True,
        'questions': [q.to_dict() for q in questions],
        'categories': widget.categories(questions),
        'categoryCounts': question_bank.category_counts(questions),
    }


# ========================================
# WIDGETS
# ========================================

@authoring_bp.route('/widgets')
def list_widgets():
    widgets = QuizWidget.query.order_by(QuizWidget.created_at.desc()).all()
    return jsonify({
        'success': True,
        'widgets': [
            {'id': w.id, 'title': w.title, 'questionCount': len(w.get_questions())}
            for w in widgets
        ],
    })


@authoring_bp.route('/widgets', methods=['POST'])
def create_widget():
    data = get_json_body()
    widget = QuizWidget(title=(data.get('title') or 'Quiz').strip() or 'Quiz')
    errors = widget.update_settings(data)
    if errors:
        return json_error('Invalid settings', 400, errors=errors)

    if current_app.config.get('SEED_SAMPLE_QUESTIONS'):
        widget.set_questions(sample_questions())
    else:
        widget.set_questions([])

    db.session.add(widget)
    db.session.commit()
    logger.info('Created quiz widget %s (%s)', widget.id, widget.title)
    return jsonify({'success': True, 'widget': widget.to_settings_dict()}), 201


@authoring_bp.route('/widgets/<int:widget_id>')
def get_widget(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    body = _bank_payload(widget)
    body['widget'] = widget.to_settings_dict()
    return jsonify(body)


@authoring_bp.route('/widgets/<int:widget_id>', methods=['PUT', 'PATCH'])
def update_widget(widget_id):
    """Property pane: apply settings, nothing saved when any value is invalid"""
    widget = QuizWidget.query.get_or_404(widget_id)
    errors = widget.update_settings(get_json_body())
    if errors:
        return json_error('Invalid settings', 400, errors=errors)
    db.session.commit()
    AttemptRegistry.discard_widget(widget.id)
    return jsonify({'success': True, 'widget': widget.to_settings_dict()})


@authoring_bp.route('/widgets/<int:widget_id>', methods=['DELETE'])
def delete_widget(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    AttemptRegistry.discard_widget(widget.id)
    db.session.delete(widget)
    db.session.commit()
    logger.info('Deleted quiz widget %s', widget_id)
    return jsonify({'success': True})


# ========================================
# QUESTIONS
# ========================================

@authoring_bp.route('/widgets/<int:widget_id>/questions')
def list_questions(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    return jsonify(_bank_payload(widget))


@authoring_bp.route('/widgets/<int:widget_id>/questions', methods=['POST'])
def add_question(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    questions = widget.get_questions()
    question, errors = _question_from_payload(
        get_json_body(), question_bank.new_question_id(questions)
    )
    if errors:
        return json_error('Please fix the highlighted problems.', 400, errors=errors)

    questions = question_bank.add_or_update(questions, question)
    _save_bank(widget, questions)
    body = _bank_payload(widget, questions)
    body['question'] = question.to_dict()
    return jsonify(body), 201


@authoring_bp.route('/widgets/<int:widget_id>/questions/<int:question_id>', methods=['PUT'])
def edit_question(widget_id, question_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    questions = widget.get_questions()
    if not any(q.id == question_id for q in questions):
        return json_error(f'Question {question_id} not found', 404)

    question, errors = _question_from_payload(get_json_body(), question_id)
    if errors:
        return json_error('Please fix the highlighted problems.', 400, errors=errors)

    questions = question_bank.add_or_update(questions, question)
    _save_bank(widget, questions)
    body = _bank_payload(widget, questions)
    body['question'] = question.to_dict()
    return jsonify(body)


@authoring_bp.route('/widgets/<int:widget_id>/questions/<int:question_id>', methods=['DELETE'])
def delete_question(widget_id, question_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    questions = widget.get_questions()
    remaining = question_bank.delete(questions, question_id)
    if len(remaining) == len(questions):
        return json_error(f'Question {question_id} not found', 404)
    _save_bank(widget, remaining)
    return jsonify(_bank_payload(widget, remaining))


@authoring_bp.route('/widgets/<int:widget_id>/questions', methods=['DELETE'])
def delete_all_questions(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    _save_bank(widget, question_bank.delete_all(widget.get_questions()))
    return jsonify(_bank_payload(widget, []))


@authoring_bp.route('/widgets/<int:widget_id>/questions/preview', methods=['POST'])
def preview_question(widget_id):
    """Render an unsaved question the way a quiz taker would see it"""
    widget = QuizWidget.query.get_or_404(widget_id)
    question, errors = _question_from_payload(get_json_body(), 0)
    if errors:
        return json_error('Please fix the highlighted problems.', 400, errors=errors)

    attempt = Attempt(widget.id, AttemptSettings.from_widget(widget), [question])
    return jsonify({
        'success': True,
        'preview': attempt.question_view(attempt.questions[0]),
        'correctAnswer': ScoringService.correct_answer_text(question),
    })


@authoring_bp.route('/widgets/<int:widget_id>/questions/<int:question_id>/move', methods=['POST'])
def move_question(widget_id, question_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    direction = get_json_body().get('direction')
    if direction not in ('up', 'down'):
        return json_error("direction must be 'up' or 'down'", 400)
    try:
        questions = question_bank.move_question(
            widget.get_questions(), question_id, -1 if direction == 'up' else 1
        )
    except KeyError:
        return json_error(f'Question {question_id} not found', 404)
    _save_bank(widget, questions)
    return jsonify(_bank_payload(widget, questions))


# ========================================
# CATEGORIES
# ========================================

@authoring_bp.route('/widgets/<int:widget_id>/categories')
def get_categories(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    questions = widget.get_questions()
    return jsonify({
        'success': True,
        'categories': widget.categories(questions),
        'categoryCounts': question_bank.category_counts(questions),
    })


@authoring_bp.route('/widgets/<int:widget_id>/categories', methods=['PUT'])
def order_categories(widget_id):
    """Save the category order and re-sort the bank to match"""
    widget = QuizWidget.query.get_or_404(widget_id)
    order = get_json_body().get('order')
    if not isinstance(order, list) or not all(isinstance(c, str) for c in order):
        return json_error('order must be a list of category names', 400)

    questions = question_bank.reorder_categories(widget.get_questions(), order)
    widget.set_category_order(order)
    _save_bank(widget, questions)
    return jsonify(_bank_payload(widget, questions))


# ========================================
# IMPORT / EXPORT
# ========================================

def _import_source():
    """(format, text, default category) from an upload or a JSON body"""
    upload = request.files.get('file')
    if upload is not None:
        name = (upload.filename or '').lower()
        fmt = request.form.get('format') or ('json' if name.endswith('.json') else 'csv')
        text = upload.read().decode('utf-8-sig', errors='replace')
        return fmt.lower(), text, request.form.get('defaultCategory')
    data = get_json_body()
    return (data.get('format') or 'csv').lower(), data.get('content') or '', data.get('defaultCategory')


@authoring_bp.route('/widgets/<int:widget_id>/import', methods=['POST'])
def import_questions(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    fmt, text, default_category = _import_source()
    if fmt not in ('csv', 'json'):
        return json_error("format must be 'csv' or 'json'", 400)
    if not text.strip():
        return json_error('The import file is empty.', 400)

    questions = widget.get_questions()
    start_id = question_bank.new_question_id(questions)
    if fmt == 'json':
        result = import_export.parse_json(text, default_category, start_id)
    else:
        result = import_export.parse_csv(text, default_category, start_id)

    if not result.questions:
        return json_error('No valid questions found to import.', 400, errors=result.errors)

    questions = question_bank.append_imported(questions, result.questions)
    _save_bank(widget, questions)
    logger.info(
        'Imported %s questions into widget %s (%s rejected)',
        len(result.questions), widget.id, len(result.errors)
    )
    body = _bank_payload(widget, questions)
    body.update({'imported': len(result.questions), 'errors': result.errors})
    return jsonify(body)


@authoring_bp.route('/widgets/<int:widget_id>/export')
def export_questions(widget_id):
    widget = QuizWidget.query.get_or_404(widget_id)
    fmt = request.args.get('format', 'json').lower()
    questions = widget.get_questions()
    if fmt == 'json':
        content, mimetype = import_export.export_json(questions), 'application/json'
    elif fmt == 'csv':
        content, mimetype = import_export.export_csv(questions), 'text/csv'
    else:
        return json_error("format must be 'csv' or 'json'", 400)

    filename = import_export.export_filename(fmt)
    return Response(
        content,
        mimetype=mimetype,
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )
