"""
Pytest configuration and shared fixtures for the questions_db test suite.

This module provides:
- Temporary directory and database path fixtures
- A DatabaseConnection with the forum schema applied
- A small seeded forum (users, questions, replies, follows, likes)
"""

import pytest
import tempfile
import shutil
from pathlib import Path
from typing import Generator, Dict, Any
import sys

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from questions_db.models import DatabaseConnection


@pytest.fixture(scope="function")
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(scope="function")
def test_db_path(temp_dir: Path) -> Path:
    """Create a temporary database file path."""
    return temp_dir / "test_questions.db"


@pytest.fixture(scope="function")
def db_connection(test_db_path: Path):
    """
    Create a test database connection with schema.

    The handle is opened with the bundled schema applied and closed
    after the test.
    """
    conn = DatabaseConnection(str(test_db_path), initialize=True)
    conn.connect()

    yield conn

    conn.close()


@pytest.fixture
def forum_data(db_connection) -> Dict[str, Any]:
    """
    Seed a small forum.

    Likes per question:   q1=1, q2=0, q3=1, q4=0, q5=3
    Follows per question: q1=2, q2=0, q3=3, q4=1, q5=1
    Replies: r1 answers q1, r2 and r3 answer r1, r4 answers q3.
    """
    users = [
        (1, "Ada", "Lovelace"),
        (2, "Alan", "Turing"),
        (3, "Grace", "Hopper"),
        (4, "Edsger", "Dijkstra"),
    ]
    questions = [
        (1, "Analytical Engine", "Can it compose music?", 1),
        (2, "Bernoulli numbers", "Is note G correct?", 1),
        (3, "Halting", "Does every program stop?", 2),
        (4, "Compilers", "Why not write programs in English?", 3),
        (5, "Imitation game", "Can machines think?", 2),
    ]
    replies = [
        (1, 1, None, 2, "Given the right notation, yes."),
        (2, 1, 1, 3, "Only if someone writes the compiler."),
        (3, 1, 1, 1, "The engine weaves algebraic patterns."),
        (4, 3, None, 1, "Not every one."),
    ]
    follows = [
        (1, 1, 2),
        (2, 1, 3),
        (3, 3, 1),
        (4, 3, 2),
        (5, 3, 4),
        (6, 4, 1),
        (7, 5, 3),
    ]
    likes = [
        (1, 5, 1),
        (2, 5, 3),
        (3, 5, 4),
        (4, 1, 2),
        (5, 3, 1),
    ]

    with db_connection.get_connection() as conn:
        conn.executemany("INSERT INTO users (id, fname, lname) VALUES (?, ?, ?)", users)
        conn.executemany(
            "INSERT INTO questions (id, title, body, user_id) VALUES (?, ?, ?, ?)", questions
        )
        conn.executemany(
            "INSERT INTO replies (id, question_id, reply_id, user_id, body) VALUES (?, ?, ?, ?, ?)",
            replies
        )
        conn.executemany(
            "INSERT INTO question_follows (id, question_id, follower_id) VALUES (?, ?, ?)", follows
        )
        conn.executemany(
            "INSERT INTO question_likes (id, question_id, user_id) VALUES (?, ?, ?)", likes
        )
        conn.commit()

    return {
        "users": users,
        "questions": questions,
        "replies": replies,
        "follows": follows,
        "likes": likes,
    }


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom settings."""
    # Register custom markers
    config.addinivalue_line("markers", "unit: Unit tests against a temporary database")
    config.addinivalue_line("markers", "integration: Multi-step scenarios across several models")
