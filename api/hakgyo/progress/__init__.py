"""Learner progress module.

Provides:
- The sequential unlock gate over the materi of a kelas
- Completion records and assessments
- Kelas progress with per-materi access
"""

from .gate import CompletionRecord, GateResult, Lesson, evaluate
from .models import PROGRESS_TABLES_CQL


__all__ = [
    "PROGRESS_TABLES_CQL",
    "CompletionRecord",
    "GateResult",
    "Lesson",
    "evaluate",
]
