"""
Ledger programs.

Each program owns one record kind and exposes its operations through
@operation. DEFAULT_PROGRAMS is the set the executor dispatches into.
"""

from acadledger.programs.base import LedgerProgram, operation
from acadledger.programs.classes import ClassProgram
from acadledger.programs.exams import ExamProgram
from acadledger.programs.grades import GradeProgram
from acadledger.programs.materials import MaterialProgram

DEFAULT_PROGRAMS = (ClassProgram, MaterialProgram, ExamProgram, GradeProgram)

__all__ = [
    "LedgerProgram",
    "operation",
    "ClassProgram",
    "MaterialProgram",
    "ExamProgram",
    "GradeProgram",
    "DEFAULT_PROGRAMS",
]
