import pytest

from exam_prep_cbt.models.result_model import QuestionResult, ResultSummary, TestResult
from exam_prep_cbt.services.exam_service import (
    build_report,
    calculate_accuracy,
    calculate_attempt_accuracy,
    calculate_attempted,
    calculate_difficulty_breakdown,
    collect_insights,
    format_time_taken,
    get_grade,
)


def _summary(**kw) -> ResultSummary:
    values = {
        "totalQuestions": 20,
        "correctAnswers": 15,
        "wrongAnswers": 3,
        "skippedQuestions": 2,
        "percentage": 75,
        "score": 57,
        "timeTaken": 25,
    }
    values.update(kw)
    return ResultSummary.model_validate(values)


def test_accuracy_figures():
    summary = _summary()
    assert calculate_accuracy(summary) == 75.0
    assert calculate_attempted(summary) == 18
    assert calculate_attempt_accuracy(summary) == pytest.approx(83.333, rel=1e-4)
    assert get_grade(summary.percentage) == "B+"


def test_zero_questions_do_not_divide_by_zero():
    summary = _summary(totalQuestions=0, correctAnswers=0, wrongAnswers=0, skippedQuestions=0, percentage=0)
    assert calculate_accuracy(summary) == 0
    assert calculate_attempt_accuracy(summary) == 0


def test_all_skipped_attempt_accuracy_is_zero():
    summary = _summary(correctAnswers=0, wrongAnswers=0, skippedQuestions=20, percentage=0)
    assert calculate_attempt_accuracy(summary) == 0


@pytest.mark.parametrize(
    "percentage, grade",
    [(100, "A+"), (90, "A+"), (89.99, "A"), (80, "A"), (70, "B+"), (60, "B"), (59.5, "C"), (50, "C"), (49.9, "D"), (0, "D")],
)
def test_grade_bands(percentage, grade):
    assert get_grade(percentage) == grade


def test_difficulty_breakdown_includes_empty_buckets():
    questions = [
        QuestionResult(question_id="a", is_correct=True, difficulty="Easy"),
        QuestionResult(question_id="b", is_correct=False, difficulty="Easy"),
        QuestionResult(question_id="c", is_correct=True, difficulty=None),
    ]
    breakdown = calculate_difficulty_breakdown(questions)
    assert set(breakdown) == {"Easy", "Medium", "Hard"}
    assert (breakdown["Easy"].total, breakdown["Easy"].correct, breakdown["Easy"].percentage) == (2, 1, 50.0)
    # 난이도 없는 문제는 Medium 으로 집계
    assert (breakdown["Medium"].total, breakdown["Medium"].correct) == (1, 1)
    assert breakdown["Hard"].percentage == 0


def test_insights_thresholds():
    summary = _summary(wrongAnswers=4, skippedQuestions=1, timeTaken=20)
    breakdown = calculate_difficulty_breakdown([
        QuestionResult(question_id="e", is_correct=True, difficulty="Easy"),
        QuestionResult(question_id="h", is_correct=False, difficulty="Hard"),
    ])
    strengths, improvements = collect_insights(summary, breakdown)
    assert strengths == [
        "Strong overall performance",
        "Excellent on easy questions",
        "Good attempt rate",
        "Efficient time management",
    ]
    assert improvements == ["Practice harder questions"]


def test_weak_result_insights():
    summary = _summary(correctAnswers=3, wrongAnswers=10, skippedQuestions=7, percentage=15, timeTaken=40)
    strengths, improvements = collect_insights(summary, calculate_difficulty_breakdown([]))
    assert strengths == []
    assert improvements == ["Focus on accuracy", "Work on time management", "Review fundamental concepts"]


def test_format_time_taken():
    assert format_time_taken(42) == "42m"
    assert format_time_taken(65) == "1h 5m"
    assert format_time_taken(0) == "0m"


def test_build_report_is_deterministic():
    result = TestResult.model_validate({
        "summary": {
            "totalQuestions": 3, "correctAnswers": 2, "wrongAnswers": 1,
            "skippedQuestions": 0, "percentage": 66.67, "score": 7, "timeTaken": 2,
        },
        "questions": [
            {"_id": "q0", "selectedAnswer": 1, "correctAnswer": 1, "isCorrect": True, "difficulty": "Hard"},
            {"_id": "q1", "selectedAnswer": 0, "correctAnswer": 2, "isCorrect": False, "difficulty": "Hard"},
            {"_id": "q2", "selectedAnswer": 3, "correctAnswer": 3, "isCorrect": True, "difficulty": "Easy"},
        ],
    })
    first = build_report(result)
    assert first == build_report(result)
    assert first.grade == "B"
    assert first.difficulty_breakdown["Hard"].correct == 1
    assert first.time_taken_label == "2m"
    assert result.per_question[1].correct_option == 2
