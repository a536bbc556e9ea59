"""
services/exam_service.py

채점 결과(TestResult) 분석 비즈니스 로직.
순수 Python 함수로 구성. 네트워크 호출, 전역 상태 변경 없음.
같은 입력에는 항상 같은 결과를 반환한다.
"""

from typing import Dict, Iterable, List, Tuple

from exam_prep_cbt.models.question_model import Difficulty
from exam_prep_cbt.models.result_model import (
    DifficultyStat,
    QuestionResult,
    ResultReport,
    ResultSummary,
    TestResult,
)

# (하한 백분율, 등급), 위에서부터 검사
GRADE_BANDS: Tuple[Tuple[float, str], ...] = (
    (90, "A+"),
    (80, "A"),
    (70, "B+"),
    (60, "B"),
    (50, "C"),
)
LOWEST_GRADE = "D"


def _ratio(numerator: int, denominator: int) -> float:
    return numerator / denominator * 100 if denominator else 0.0


def calculate_accuracy(summary: ResultSummary) -> float:
    """
    전체 정답률 (%).

    Returns:
        correct_answers / total_questions × 100. 문항이 0개이면 0.0.
    """
    return _ratio(summary.correct_answers, summary.total_questions)


def calculate_attempted(summary: ResultSummary) -> int:
    """응답한 문항 수 = 전체 − 미응답."""
    return summary.total_questions - summary.skipped_questions


def calculate_attempt_accuracy(summary: ResultSummary) -> float:
    """응답한 문항 기준 정답률 (%). 응답 문항이 0개이면 0.0."""
    return _ratio(summary.correct_answers, calculate_attempted(summary))


def get_grade(percentage: float) -> str:
    """
    백분율 → 등급.
    ≥90 A+, ≥80 A, ≥70 B+, ≥60 B, ≥50 C, 그 외 D
    """
    for threshold, grade in GRADE_BANDS:
        if percentage >= threshold:
            return grade
    return LOWEST_GRADE


def calculate_difficulty_breakdown(
    questions: Iterable[QuestionResult],
) -> Dict[str, DifficultyStat]:
    """
    난이도별 정답 현황. 난이도 정보가 없는 문제는 Medium 으로 집계한다.

    Returns:
        {"Easy": DifficultyStat, "Medium": ..., "Hard": ...}. 세 난이도 항상 포함.
    """
    buckets: Dict[Difficulty, List[int]] = {d: [0, 0] for d in Difficulty}

    for q in questions:
        bucket = buckets[q.difficulty or Difficulty.MEDIUM]
        bucket[0] += 1
        if q.is_correct:
            bucket[1] += 1

    return {
        d.value: DifficultyStat(total=total, correct=correct, percentage=_ratio(correct, total))
        for d, (total, correct) in buckets.items()
    }


def collect_insights(
    summary: ResultSummary,
    breakdown: Dict[str, DifficultyStat],
) -> Tuple[List[str], List[str]]:
    """
    결과 화면의 강점 / 개선점 문구.

    Returns:
        (strengths, improvements)
    """
    total = summary.total_questions
    attempted = calculate_attempted(summary)
    easy = breakdown[Difficulty.EASY.value]
    hard = breakdown[Difficulty.HARD.value]

    strengths: List[str] = []
    if summary.correct_answers > total * 0.7:
        strengths.append("Strong overall performance")
    if easy.total > 0 and easy.correct / easy.total > 0.8:
        strengths.append("Excellent on easy questions")
    if total > 0 and attempted / total > 0.9:
        strengths.append("Good attempt rate")
    if summary.time_taken_minutes < total * 1.2:
        strengths.append("Efficient time management")

    improvements: List[str] = []
    if summary.wrong_answers > summary.correct_answers:
        improvements.append("Focus on accuracy")
    if summary.skipped_questions > total * 0.2:
        improvements.append("Work on time management")
    if hard.total > 0 and hard.correct / hard.total < 0.5:
        improvements.append("Practice harder questions")
    if summary.percentage < 60:
        improvements.append("Review fundamental concepts")

    return strengths, improvements


def format_time_taken(minutes: int) -> str:
    """소요 시간 표시: 1시간 이상이면 '1h 5m', 아니면 '42m'."""
    hours, mins = divmod(max(0, int(minutes)), 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"


def build_report(result: TestResult) -> ResultReport:
    """TestResult → 결과 화면용 파생 통계 전체."""
    summary = result.summary
    breakdown = calculate_difficulty_breakdown(result.per_question)
    strengths, improvements = collect_insights(summary, breakdown)

    return ResultReport(
        summary=summary,
        accuracy=calculate_accuracy(summary),
        attempted_questions=calculate_attempted(summary),
        attempt_accuracy=calculate_attempt_accuracy(summary),
        grade=get_grade(summary.percentage),
        difficulty_breakdown=breakdown,
        strengths=strengths,
        improvements=improvements,
        time_taken_label=format_time_taken(summary.time_taken_minutes),
    )
