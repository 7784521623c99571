import pytest

from quizpart.models.question import Choice, MatchingPair, Question, QuestionType
from quizpart.services import question_bank


def test_valid_questions_have_no_errors(questions):
    assert all(question_bank.validate_question(q) == [] for q in questions)


def test_title_and_category_required():
    errors = question_bank.validate_question(
        Question(id=1, title='  ', category='', type=QuestionType.SHORT_ANSWER, correct_answer='x')
    )
    assert 'Question title is required.' in errors
    assert 'Please select or enter a category.' in errors


def test_multiple_choice_rules():
    question = Question(id=1, title='Q', category='C', choices=[
        Choice(id='a', text='A', is_correct=True),
        Choice(id='b', text='   '),
    ])
    assert 'At least 2 valid choices are required.' in question_bank.validate_question(question)

    question.choices[1].text = 'B'
    question.choices[1].is_correct = True
    assert question_bank.validate_question(question) == [
        'A multiple choice question can have only one correct choice.'
    ]

    question.type = QuestionType.MULTI_SELECT
    assert question_bank.validate_question(question) == []


def test_no_correct_choice():
    question = Question(id=1, title='Q', category='C', choices=[
        Choice(id='a', text='A'), Choice(id='b', text='B'),
    ])
    assert 'Please mark at least one choice as correct.' in question_bank.validate_question(question)


def test_matching_pairs_need_both_sides():
    question = Question(id=1, title='Q', category='C', type=QuestionType.MATCHING, matching_pairs=[
        MatchingPair(id='1', left='A', right=''),
    ])
    errors = question_bank.validate_question(question)
    assert 'At least 2 matching pairs are required.' in errors
    assert 'All matching pairs must have both left and right items.' in errors


@pytest.mark.parametrize('points, time_limit, message', [
    (0, None, 'Points must be a positive number.'),
    (1, 4, 'Time limit must be between 5 seconds and 3600 seconds (1 hour).'),
    (1, 3601, 'Time limit must be between 5 seconds and 3600 seconds (1 hour).'),
])
def test_points_and_time_limit(points, time_limit, message):
    question = Question(
        id=1, title='Q', category='C', type=QuestionType.SHORT_ANSWER, correct_answer='x',
        points=points, time_limit=time_limit,
    )
    assert question_bank.validate_question(question) == [message]


def test_clean_question_drops_empty_choices():
    question = Question(id=1, title=' Q ', category=' C ', choices=[
        Choice(id='a', text='A', is_correct=True), Choice(id='b', text='B'), Choice(id='c', text=' '),
    ], correct_answer='stale')
    cleaned = question_bank.clean_question(question)
    assert [c.id for c in cleaned.choices] == ['a', 'b']
    assert cleaned.title == 'Q'
    assert cleaned.correct_answer is None


def test_add_or_update_replaces_by_id(questions):
    edited = questions[1].copy()
    edited.title = 'Edited'
    updated = question_bank.add_or_update(questions, edited)
    assert [q.id for q in updated] == [1, 2, 3, 4, 5]
    assert updated[1].title == 'Edited'
    assert updated[1].last_modified

    new = Question(id=question_bank.new_question_id(updated), title='New', category='C')
    assert new.id == 6
    assert question_bank.add_or_update(updated, new)[-1] is new


def test_delete_and_delete_all(questions):
    assert [q.id for q in question_bank.delete(questions, 3)] == [1, 2, 4, 5]
    assert question_bank.delete_all(questions) == []


def test_append_imported_renumbers_clashes(questions):
    imported = [Question(id=2, title='Clash', category='C'), Question(id=50, title='Free', category='C')]
    merged = question_bank.append_imported(questions, imported)
    assert [q.id for q in merged] == [1, 2, 3, 4, 5, 6, 50]


def test_reorder_categories_is_stable(questions):
    ordered = question_bank.reorder_categories(questions, ['Science'])
    assert [q.id for q in ordered] == [2, 3, 1, 4, 5]


def test_move_question(questions):
    assert [q.id for q in question_bank.move_question(questions, 3, -1)] == [1, 3, 2, 4, 5]
    assert [q.id for q in question_bank.move_question(questions, 5, 1)] == [1, 2, 3, 4, 5]
    with pytest.raises(KeyError):
        question_bank.move_question(questions, 99, 1)


def test_category_counts(questions):
    assert question_bank.category_counts(questions) == {'Geography': 3, 'Science': 2}
