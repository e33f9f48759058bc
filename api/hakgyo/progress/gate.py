"""Sequential unlock rules for the materi of a kelas.

``evaluate`` takes the materi of a kelas, already sorted by order, and the
learner's completion records, and derives for every materi whether it can be
opened and whether it is fully completed, plus the completion summary.

Access is one-hop: materi ``i`` opens when materi ``i - 1`` was viewed and,
if it carries an assessment, passed. Nothing further back is consulted, so
revisiting an early materi never locks later ones again.

Completion is read from the materi's own record only, so a materi can be
completed while currently locked.
"""

from collections.abc import Hashable, Mapping, Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class Lesson:
    """A materi as seen by the gate."""

    id: Hashable
    order: int
    requires_passing_score: bool = False


@dataclass(frozen=True)
class CompletionRecord:
    """A learner's state on one materi."""

    content_viewed: bool = False
    assessment_passed: bool = False


NOT_STARTED = CompletionRecord()


@dataclass(frozen=True)
class LessonGate:
    """Derived state of one materi."""

    lesson_id: Hashable
    is_accessible: bool
    is_fully_completed: bool


@dataclass(frozen=True)
class GateSummary:
    """Aggregate completion of a kelas."""

    completed_count: int
    total_count: int
    completion_percentage: int


@dataclass(frozen=True)
class GateResult:
    """Per-materi gates in input order plus the summary."""

    lessons: tuple[LessonGate, ...]
    summary: GateSummary

    def get(self, lesson_id: Hashable) -> LessonGate | None:
        """Gate of the given materi, None if it was not evaluated."""
        for gate in self.lessons:
            if gate.lesson_id == lesson_id:
                return gate
        return None


def completion_percentage(completed: int, total: int) -> int:
    """Completed share as an integer percentage, rounding halves up.

    Python's ``round`` rounds halves to even, so 0.5 steps are handled with
    integer arithmetic instead.
    """
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def is_fully_completed(lesson: Lesson, record: CompletionRecord) -> bool:
    """Viewed, and passed when the materi has an assessment."""
    if not record.content_viewed:
        return False
    if lesson.requires_passing_score:
        return record.assessment_passed
    return True


def evaluate(
    lessons: Sequence[Lesson],
    records: Mapping[Hashable, CompletionRecord],
) -> GateResult:
    """Derive access and completion for ``lessons``.

    ``lessons`` must be sorted ascending by order; they are neither re-sorted
    nor validated. A materi without a record is treated as not started.
    """
    gates: list[LessonGate] = []
    previous: Lesson | None = None
    previous_record = NOT_STARTED

    for lesson in lessons:
        record = records.get(lesson.id, NOT_STARTED)

        if previous is None:
            accessible = True
        elif not previous_record.content_viewed:
            accessible = False
        elif previous.requires_passing_score and not previous_record.assessment_passed:
            accessible = False
        else:
            accessible = True

        gates.append(
            LessonGate(
                lesson_id=lesson.id,
                is_accessible=accessible,
                is_fully_completed=is_fully_completed(lesson, record),
            )
        )
        previous, previous_record = lesson, record

    completed = sum(1 for gate in gates if gate.is_fully_completed)
    return GateResult(
        lessons=tuple(gates),
        summary=GateSummary(
            completed_count=completed,
            total_count=len(gates),
            completion_percentage=completion_percentage(completed, len(gates)),
        ),
    )
