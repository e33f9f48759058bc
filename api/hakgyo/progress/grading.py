"""Assessment grading."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from hakgyo.progress.gate import completion_percentage


@dataclass(frozen=True)
class GradedAnswer:
    """One question after grading."""

    question_id: int
    selected_option: int | None
    correct_option: int | None
    is_correct: bool
    explanation: str | None = None


@dataclass(frozen=True)
class Grade:
    """Score of an attempt."""

    correct_answers: int
    total_questions: int
    score: int
    answers: tuple[GradedAnswer, ...]

    def is_passed(self, passing_score: int) -> bool:
        """Whether the score reaches ``passing_score``."""
        return self.score >= passing_score


def correct_option_id(question: Mapping[str, Any]) -> int | None:
    """Id of the correct option of a stored question."""
    for option in question.get("options", []):
        if option.get("is_correct"):
            return option["id"]
    return None


def grade(
    questions: Sequence[Mapping[str, Any]],
    answers: Mapping[int, int],
) -> Grade:
    """Grade ``answers`` (question id -> option id) against ``questions``.

    Answers to unknown questions are ignored and unanswered questions count
    as wrong. The score is the rounded percentage of correct answers, 0 for
    an assessment without questions.
    """
    graded = []
    for question in questions:
        selected = answers.get(question["id"])
        correct = correct_option_id(question)
        graded.append(
            GradedAnswer(
                question_id=question["id"],
                selected_option=selected,
                correct_option=correct,
                is_correct=selected is not None and selected == correct,
                explanation=question.get("explanation"),
            )
        )

    correct_count = sum(1 for answer in graded if answer.is_correct)
    return Grade(
        correct_answers=correct_count,
        total_questions=len(graded),
        score=completion_percentage(correct_count, len(graded)),
        answers=tuple(graded),
    )
