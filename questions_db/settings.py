from pathlib import Path
import logging
import os

from dotenv import load_dotenv

load_dotenv()  # Load .env file if it exists

# ============================================================================
# DATABASE
# ============================================================================

# Path to the SQLite file holding the forum tables
DB_PATH = os.getenv("QUESTIONS_DB_PATH", "questions.db")

# Seconds to wait on a locked database before sqlite3 gives up
DB_TIMEOUT = float(os.getenv("QUESTIONS_DB_TIMEOUT", "30.0"))

# Bundled schema for users, questions, replies, question_follows, question_likes
SCHEMA_PATH = Path(__file__).parent / "schema.sql"

# ============================================================================
# LOGGING
# ============================================================================

LOG_LEVEL = os.getenv("QUESTIONS_DB_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("QUESTIONS_DB_LOG_FILE") or None  # Stream only when unset
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level=None, log_file=None):
    """Configure root logging for applications embedding the library.

    The library itself only creates module loggers; call this once from the
    application entry point.
    """
    handlers = [logging.StreamHandler()]
    log_file = log_file or LOG_FILE
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers
    )
