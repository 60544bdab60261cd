"""Common utilities: path management, text helpers and timing"""
import os
import time

# ⚠️ DO NOT import settings here - causes circular import with config.py


# ============= Path Management =============

def get_project_root() -> str:
    """Returns the absolute path to the project's root directory."""
    return os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


def get_log_file_path() -> str:
    """Returns the full log file path. The directory is created by setup_logging()."""
    return os.path.join(get_project_root(), 'log', 'rag_core.log')


# ============= Text Utilities =============

def truncate(text: str, limit: int = 50) -> str:
    """Shorten text for log lines, marking the cut with '...'."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def is_blank(text: str) -> bool:
    return not text or not text.strip()


# ============= Timing =============

class Stopwatch:
    """Elapsed wall time since construction, for diagnostic log lines."""

    def __init__(self):
        self._start = time.perf_counter()

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self._start

    def __str__(self):
        return f"{self.elapsed:.2f}s"
