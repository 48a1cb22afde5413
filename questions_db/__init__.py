"""
SQLite Data Layer for the Q&A Forum
===================================

Provides a connection handle and table-backed models for users,
questions, replies, question follows and question likes.
"""

from .models import (
    DatabaseConnection,
    DuplicateRecordError,
    Question,
    QuestionFollow,
    QuestionLike,
    QuestionsDatabaseError,
    RecordDecodeError,
    Reply,
    User,
)

__version__ = "1.0.0"
__all__ = [
    "DatabaseConnection",
    "DuplicateRecordError",
    "Question",
    "QuestionFollow",
    "QuestionLike",
    "QuestionsDatabaseError",
    "RecordDecodeError",
    "Reply",
    "User",
]
