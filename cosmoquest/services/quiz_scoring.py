from typing import List, Optional, Sequence
from ..errors import InvalidAnswer, QuizIncomplete
from ..models import QuizQuestion, QuizResult

def completion_message(score: int, total: int) -> str:
    return f"Quiz complete! You scored {score} out of {total}."

def score_quiz(questions: Sequence[QuizQuestion], answers: Sequence[Optional[str]]) -> QuizResult:
    """Score a submitted answer set.

    Every question must be answered with one of its own options; the score is
    the number of answers equal to the designated correct option.
    """
    if len(answers) != len(questions) or any(a is None for a in answers):
        raise QuizIncomplete(f"answer all {len(questions)} questions before submitting")
    correct: List[bool] = []
    for index, (question, answer) in enumerate(zip(questions, answers)):
        if answer not in question.options:
            raise InvalidAnswer(f"answer {index + 1} is not one of the options")
        correct.append(answer == question.correct_answer)
    score = sum(1 for c in correct if c)
    return QuizResult(
        score=score,
        total=len(questions),
        correct=correct,
        correct_answers=[q.correct_answer for q in questions],
        message=completion_message(score, len(questions)),
    )
