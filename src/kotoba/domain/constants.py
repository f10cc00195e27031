"""Centralized constants for the Kotoba mastery engine.

Score deltas are part of the persisted history: every stored score is a sum
of these values, so they must never change.
"""

# ---------- Scoring ----------
SUCCESS_DELTA = 2
PARTIAL_DELTA = 1
FAIL_DELTA = -2

# ---------- Difficulty Classifier ----------
DEFAULT_SCORE_THRESHOLD = -5
DEFAULT_MIN_ATTEMPTS = 5
DEFAULT_FAIL_RATE_THRESHOLD = 0.4

# ---------- Storage ----------
DEFAULT_DB_FILENAME = "kotoba.sqlite"
DEFAULT_SQLITE_TIMEOUT = 5.0  # seconds
CHUNK_SIZE = 500

# ---------- Server ----------
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8787
SCOPE_HEADER = "X-User-Id"
