from __future__ import annotations

import enum


class Role(str, enum.Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class ContentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"


class ContentVisibility(str, enum.Enum):
    PUBLIC = "public"
    DEPARTMENT = "department"
    PRIVATE = "private"


class ContentKind(str, enum.Enum):
    NOTE = "note"
    QUESTION_PAPER = "question_paper"


class ExamType(str, enum.Enum):
    MIDTERM = "midterm"
    FINAL = "final"
    QUIZ = "quiz"
    ASSIGNMENT = "assignment"
    PRACTICAL = "practical"


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class SortOrder(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"
