"""
Q&A Forum Database Models
=========================

Connection handle and table-backed record models for the forum:
users, questions, replies, question follows and question likes.

Every model maps one table. Finders are classmethods taking an explicit
``DatabaseConnection``; records are snapshots of a row at query time.
"""

import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Tuple
import logging

from . import settings

logger = logging.getLogger(__name__)


class QuestionsDatabaseError(Exception):
    """Base class for errors raised by the forum models."""


class DuplicateRecordError(QuestionsDatabaseError):
    """More than one row matched a lookup that must be unique."""


class RecordDecodeError(QuestionsDatabaseError):
    """A row did not match the columns a model expects."""


class DatabaseConnection:
    """SQLite connection handle with explicit open/close lifecycle."""

    def __init__(self, db_path: Optional[str] = None, timeout: Optional[float] = None,
                 initialize: bool = False):
        self.db_path = str(db_path or settings.DB_PATH)
        self.timeout = settings.DB_TIMEOUT if timeout is None else timeout
        self.schema_path = settings.SCHEMA_PATH
        self._initialize = initialize
        self._connection: Optional[sqlite3.Connection] = None

    @property
    def closed(self) -> bool:
        return self._connection is None

    def connect(self) -> sqlite3.Connection:
        """Open (or return the already open) connection."""
        if self._connection is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=self.timeout
            )
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
            logger.info(f"Opened database: {self.db_path}")

            if self._initialize:
                try:
                    self.initialize_schema()
                except Exception:
                    # Next connect() retries from a fresh connection
                    self.close()
                    raise
        return self._connection

    def close(self):
        """Close the connection. Calling it on a closed handle is a no-op."""
        if self._connection is not None:
            try:
                self._connection.close()
                logger.debug(f"Closed database: {self.db_path}")
            finally:
                self._connection = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def initialize_schema(self, schema_path: Optional[Path] = None):
        """Apply the schema script. Tables are created only if missing."""
        path = Path(schema_path or self.schema_path)
        with self.get_connection() as conn:
            conn.executescript(path.read_text(encoding='utf-8'))
            conn.commit()
        logger.info(f"Database schema applied from {path.name}")

    @contextmanager
    def get_connection(self):
        """Yield the open connection, rolling back and re-raising on failure."""
        connection = self.connect()
        try:
            yield connection
        except Exception as e:
            connection.rollback()
            logger.error(f"Database operation failed: {e}")
            raise

    def execute(self, statement: str, *params: Any) -> List[sqlite3.Row]:
        """Run one statement with positional parameters and return its rows.

        A data-modifying statement is committed before returning, unless a
        transaction was already open; that one is left to its owner.
        """
        with self.get_connection() as conn:
            t0 = time.perf_counter()
            owns_transaction = not conn.in_transaction
            cursor = conn.execute(statement, params)
            rows = cursor.fetchall()
            if owns_transaction and conn.in_transaction:
                conn.commit()
            self._log_timing("execute", t0, f"rows={len(rows)}", statement)
            return rows

    def execute_update(self, query: str, params: Tuple = ()) -> int:
        """Execute UPDATE/DELETE and return affected rows."""
        with self.get_connection() as conn:
            t0 = time.perf_counter()
            cursor = conn.execute(query, params)
            conn.commit()
            self._log_timing("execute_update", t0, f"affected={cursor.rowcount}", query)
            return cursor.rowcount

    def execute_insert(self, query: str, params: Tuple = ()) -> int:
        """Execute INSERT and return the storage-generated row id."""
        with self.get_connection() as conn:
            t0 = time.perf_counter()
            cursor = conn.execute(query, params)
            conn.commit()
            self._log_timing("execute_insert", t0, f"rowid={cursor.lastrowid}", query)
            return cursor.lastrowid

    @staticmethod
    def _log_timing(operation: str, t0: float, detail: str, query: str):
        dt = time.perf_counter() - t0
        # First line of the statement only, to keep logs concise
        first_line = query.strip().splitlines()[0] if query else ""
        logger.debug(f"DB timing: {operation} {dt:.3f}s {detail} | {first_line[:120]}")


class Record:
    """Shared row decoding and lookups for the table-backed models."""

    TABLE: ClassVar[str] = ""
    COLUMNS: ClassVar[Tuple[str, ...]] = ()
    INTEGER_COLUMNS: ClassVar[Tuple[str, ...]] = ()
    NULLABLE_COLUMNS: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def from_row(cls, row):
        """Build a record from a row, failing on missing or mistyped columns.

        Columns beyond ``COLUMNS`` are ignored, so joined ``table.*`` rows
        decode the same way as plain ones.
        """
        keys = row.keys()
        values = {}
        for column in cls.COLUMNS:
            if column not in keys:
                raise RecordDecodeError(f"{cls.__name__} row is missing column '{column}'")
            value = row[column]
            if value is None:
                if column not in cls.NULLABLE_COLUMNS:
                    raise RecordDecodeError(f"{cls.__name__}.{column} must not be NULL")
            elif column in cls.INTEGER_COLUMNS and not isinstance(value, int):
                raise RecordDecodeError(
                    f"{cls.__name__}.{column} expected an integer, got {type(value).__name__}"
                )
            values[column] = value
        return cls(**values)

    @classmethod
    def from_rows(cls, rows) -> list:
        return [cls.from_row(row) for row in rows]

    def to_dict(self) -> Dict[str, Any]:
        return {column: getattr(self, column) for column in self.COLUMNS}

    @classmethod
    def find_by_id(cls, db: DatabaseConnection, record_id: int):
        """Get a single record by primary key, or None when absent."""
        rows = db.execute(f"SELECT * FROM {cls.TABLE} WHERE {cls.TABLE}.id = ?", record_id)
        if len(rows) > 1:
            raise DuplicateRecordError(
                f"Multiple {cls.TABLE.replace('_', ' ')} found for id {record_id}"
            )
        return cls.from_row(rows[0]) if rows else None


@dataclass
class User(Record):
    """A forum member. The only model that can be written back."""

    TABLE: ClassVar[str] = "users"
    COLUMNS: ClassVar[Tuple[str, ...]] = ("id", "fname", "lname")
    INTEGER_COLUMNS: ClassVar[Tuple[str, ...]] = ("id",)

    fname: str
    lname: str
    id: Optional[int] = None

    @classmethod
    def find_by_name(cls, db: DatabaseConnection, fname: str, lname: str) -> Optional["User"]:
        rows = db.execute(
            """
            SELECT *
            FROM users
            WHERE users.fname = ? AND users.lname = ?
            ORDER BY users.id
            LIMIT 1
            """,
            fname, lname
        )
        return cls.from_row(rows[0]) if rows else None

    def authored_questions(self, db: DatabaseConnection) -> List["Question"]:
        return Question.find_by_user_id(db, self.id)

    def authored_replies(self, db: DatabaseConnection) -> List["Reply"]:
        return Reply.find_by_user_id(db, self.id)

    def followed_questions(self, db: DatabaseConnection) -> List["Question"]:
        return QuestionFollow.followed_questions_for_user_id(db, self.id)

    def liked_questions(self, db: DatabaseConnection) -> List["Question"]:
        return QuestionLike.liked_questions_for_user_id(db, self.id)

    def average_karma(self, db: DatabaseConnection) -> float:
        """Likes received per authored question.

        Questions without likes still count in the denominator. A user with
        no questions has a karma of 0.0.
        """
        rows = db.execute(
            """
            SELECT
                CAST(COUNT(question_likes.user_id) AS FLOAT) / COUNT(DISTINCT questions.id) AS karma
            FROM questions
            LEFT OUTER JOIN question_likes ON questions.id = question_likes.question_id
            WHERE questions.user_id = ?
            """,
            self.id
        )
        karma = rows[0]['karma'] if rows else None
        return float(karma) if karma is not None else 0.0

    def save(self, db: DatabaseConnection) -> int:
        """Insert the user when new, otherwise update it by id. Last writer wins."""
        if self.id is None:
            self.id = db.execute_insert(
                "INSERT INTO users (fname, lname) VALUES (?, ?)",
                (self.fname, self.lname)
            )
            logger.info(f"Created user {self.id}: {self.fname} {self.lname}")
        else:
            db.execute_update(
                "UPDATE users SET fname = ?, lname = ? WHERE id = ?",
                (self.fname, self.lname, self.id)
            )
            logger.info(f"Updated user {self.id}: {self.fname} {self.lname}")
        return self.id


@dataclass(frozen=True)
class Question(Record):
    TABLE: ClassVar[str] = "questions"
    COLUMNS: ClassVar[Tuple[str, ...]] = ("id", "title", "body", "user_id")
    INTEGER_COLUMNS: ClassVar[Tuple[str, ...]] = ("id", "user_id")

    id: int
    title: str
    body: str
    user_id: int

    @classmethod
    def find_by_title(cls, db: DatabaseConnection, title: str) -> Optional["Question"]:
        rows = db.execute(
            "SELECT * FROM questions WHERE questions.title = ? ORDER BY questions.id LIMIT 1",
            title
        )
        return cls.from_row(rows[0]) if rows else None

    @classmethod
    def find_by_user_id(cls, db: DatabaseConnection, user_id: int) -> List["Question"]:
        rows = db.execute("SELECT * FROM questions WHERE questions.user_id = ?", user_id)
        return cls.from_rows(rows)

    @classmethod
    def most_followed(cls, db: DatabaseConnection, n: int) -> List["Question"]:
        return QuestionFollow.most_followed_questions(db, n)

    @classmethod
    def most_liked(cls, db: DatabaseConnection, n: int) -> List["Question"]:
        return QuestionLike.most_liked_questions(db, n)

    def author(self, db: DatabaseConnection) -> Optional[User]:
        return User.find_by_id(db, self.user_id)

    def replies(self, db: DatabaseConnection) -> List["Reply"]:
        return Reply.find_by_question_id(db, self.id)

    def followers(self, db: DatabaseConnection) -> List[User]:
        return QuestionFollow.followers_for_question_id(db, self.id)

    def likers(self, db: DatabaseConnection) -> List[User]:
        return QuestionLike.likers_for_question_id(db, self.id)

    def num_likes(self, db: DatabaseConnection) -> int:
        return QuestionLike.num_likes_for_question_id(db, self.id)


@dataclass(frozen=True)
class Reply(Record):
    """A reply to a question, optionally nested under a parent reply."""

    TABLE: ClassVar[str] = "replies"
    COLUMNS: ClassVar[Tuple[str, ...]] = ("id", "question_id", "reply_id", "user_id", "body")
    INTEGER_COLUMNS: ClassVar[Tuple[str, ...]] = ("id", "question_id", "reply_id", "user_id")
    NULLABLE_COLUMNS: ClassVar[Tuple[str, ...]] = ("reply_id",)

    id: int
    question_id: int
    reply_id: Optional[int]
    user_id: int
    body: str

    @classmethod
    def find_by_user_id(cls, db: DatabaseConnection, user_id: int) -> List["Reply"]:
        rows = db.execute("SELECT * FROM replies WHERE replies.user_id = ?", user_id)
        return cls.from_rows(rows)

    @classmethod
    def find_by_question_id(cls, db: DatabaseConnection, question_id: int) -> List["Reply"]:
        rows = db.execute("SELECT * FROM replies WHERE replies.question_id = ?", question_id)
        return cls.from_rows(rows)

    def author(self, db: DatabaseConnection) -> Optional[User]:
        return User.find_by_id(db, self.user_id)

    def question(self, db: DatabaseConnection) -> Optional[Question]:
        return Question.find_by_id(db, self.question_id)

    def parent_reply(self, db: DatabaseConnection) -> Optional["Reply"]:
        """Get the reply this one answers; top-level replies have none."""
        if self.reply_id is None:
            return None
        return Reply.find_by_id(db, self.reply_id)

    def child_replies(self, db: DatabaseConnection) -> List["Reply"]:
        rows = db.execute("SELECT * FROM replies WHERE replies.reply_id = ?", self.id)
        return Reply.from_rows(rows)


@dataclass(frozen=True)
class QuestionFollow(Record):
    TABLE: ClassVar[str] = "question_follows"
    COLUMNS: ClassVar[Tuple[str, ...]] = ("id", "question_id", "follower_id")
    INTEGER_COLUMNS: ClassVar[Tuple[str, ...]] = ("id", "question_id", "follower_id")

    id: int
    question_id: int
    follower_id: int

    @classmethod
    def followers_for_question_id(cls, db: DatabaseConnection, question_id: int) -> List[User]:
        rows = db.execute(
            """
            SELECT users.*
            FROM question_follows
            JOIN users ON question_follows.follower_id = users.id
            WHERE question_follows.question_id = ?
            """,
            question_id
        )
        return User.from_rows(rows)

    @classmethod
    def followed_questions_for_user_id(cls, db: DatabaseConnection, user_id: int) -> List[Question]:
        rows = db.execute(
            """
            SELECT questions.*
            FROM question_follows
            JOIN questions ON question_follows.question_id = questions.id
            WHERE question_follows.follower_id = ?
            """,
            user_id
        )
        return Question.from_rows(rows)

    @classmethod
    def most_followed_questions(cls, db: DatabaseConnection, n: int) -> List[Question]:
        """Get the n questions with the most followers, ties by lowest id."""
        if n < 0:
            raise ValueError(f"n must be non-negative, got {n}")
        rows = db.execute(
            """
            SELECT questions.*
            FROM question_follows
            JOIN questions ON question_follows.question_id = questions.id
            GROUP BY questions.id
            ORDER BY COUNT(question_follows.follower_id) DESC, questions.id ASC
            LIMIT ?
            """,
            n
        )
        return Question.from_rows(rows)

    def question(self, db: DatabaseConnection) -> Optional[Question]:
        return Question.find_by_id(db, self.question_id)

    def follower(self, db: DatabaseConnection) -> Optional[User]:
        return User.find_by_id(db, self.follower_id)


@dataclass(frozen=True)
class QuestionLike(Record):
    TABLE: ClassVar[str] = "question_likes"
    COLUMNS: ClassVar[Tuple[str, ...]] = ("id", "question_id", "user_id")
    INTEGER_COLUMNS: ClassVar[Tuple[str, ...]] = ("id", "question_id", "user_id")

    id: int
    question_id: int
    user_id: int

    @classmethod
    def likers_for_question_id(cls, db: DatabaseConnection, question_id: int) -> List[User]:
        rows = db.execute(
            """
            SELECT users.*
            FROM question_likes
            JOIN users ON question_likes.user_id = users.id
            WHERE question_likes.question_id = ?
            """,
            question_id
        )
        return User.from_rows(rows)

    @classmethod
    def num_likes_for_question_id(cls, db: DatabaseConnection, question_id: int) -> int:
        rows = db.execute(
            """
            SELECT COUNT(question_likes.user_id) AS num_likes
            FROM question_likes
            WHERE question_likes.question_id = ?
            GROUP BY question_likes.question_id
            """,
            question_id
        )
        # GROUP BY yields no row at all for a question without likes
        if not rows:
            return 0
        return rows[0]['num_likes']

    @classmethod
    def liked_questions_for_user_id(cls, db: DatabaseConnection, user_id: int) -> List[Question]:
        rows = db.execute(
            """
            SELECT questions.*
            FROM question_likes
            JOIN questions ON question_likes.question_id = questions.id
            WHERE question_likes.user_id = ?
            """,
            user_id
        )
        return Question.from_rows(rows)

    @classmethod
    def most_liked_questions(cls, db: DatabaseConnection, n: int) -> List[Question]:
        """Get the n most liked questions, ties by lowest id."""
        if n < 0:
            raise ValueError(f"n must be non-negative, got {n}")
        rows = db.execute(
            """
            SELECT questions.*
            FROM question_likes
            JOIN questions ON question_likes.question_id = questions.id
            GROUP BY questions.id
            ORDER BY COUNT(question_likes.user_id) DESC, questions.id ASC
            LIMIT ?
            """,
            n
        )
        return Question.from_rows(rows)

    def question(self, db: DatabaseConnection) -> Optional[Question]:
        return Question.find_by_id(db, self.question_id)

    def liker(self, db: DatabaseConnection) -> Optional[User]:
        return User.find_by_id(db, self.user_id)
