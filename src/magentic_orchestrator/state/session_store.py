"""
Execution Session Store

Persists each ExecutionSession as ``<executions_dir>/<id>.json``. Writes go
to a temporary file that replaces the target under a per-session file lock,
so readers never observe a half-written session. There is no cache: every
load reads the file.
"""

import json
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Any

from ..core.models import ExecutionSession, utc_now

logger = logging.getLogger(__name__)

# Platform-specific locking imports
try:
    import fcntl
    HAS_FCNTL = True
except ImportError:
    HAS_FCNTL = False

try:
    import msvcrt
    HAS_MSVCRT = True
except ImportError:
    HAS_MSVCRT = False

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileLock:
    """Platform-independent file locking."""

    def __init__(self, lock_file: Path, timeout: float = 30.0):
        """
        Initialize a file lock.

        Args:
            lock_file: Path to the lock file
            timeout: Maximum time to wait for lock (seconds)
        """
        self.lock_file = lock_file
        self.timeout = timeout
        self.lock_fd = None

    def acquire(self) -> bool:
        """
        Acquire the file lock.

        Returns:
            True if lock acquired, False if timeout
        """
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)

        start_time = time.time()

        while True:
            try:
                self.lock_fd = open(self.lock_file, "w")

                if HAS_FCNTL:
                    fcntl.flock(self.lock_fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                elif HAS_MSVCRT:
                    msvcrt.locking(self.lock_fd.fileno(), msvcrt.LK_NBLCK, 1)
                else:
                    self.lock_fd.write(str(os.getpid()))
                    self.lock_fd.flush()
                return True

            except OSError:
                if self.lock_fd:
                    self.lock_fd.close()
                self.lock_fd = None

                if time.time() - start_time >= self.timeout:
                    return False

                wait_time = min(0.05 * (2 ** int(time.time() - start_time)), 1.0)
                time.sleep(wait_time)

    def release(self) -> None:
        """Release the file lock."""
        if not self.lock_fd:
            return
        try:
            if HAS_FCNTL:
                fcntl.flock(self.lock_fd.fileno(), fcntl.LOCK_UN)
            elif HAS_MSVCRT:
                msvcrt.locking(self.lock_fd.fileno(), msvcrt.LK_UNLCK, 1)
        except OSError as e:
            logger.debug(f"Unlocking {self.lock_file} failed: {e}")
        finally:
            self.lock_fd.close()
            self.lock_fd = None

    def __enter__(self):
        if not self.acquire():
            raise TimeoutError(f"Could not acquire lock on {self.lock_file} within {self.timeout}s")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


class ExecutionSessionStore:
    """
    JSON-file store for execution sessions.

    Example:
        store = ExecutionSessionStore(Path("~/.magentic-orchestrator/executions").expanduser())
        store.save(session)
        restored = store.load(session.id)
        for summary in store.list():
            print(summary["id"], summary["task"])
    """

    def __init__(self, executions_dir: Path | str, lock_timeout: float = 30.0):
        self.executions_dir = Path(executions_dir)
        self.lock_timeout = lock_timeout

    def _session_path(self, session_id: str) -> Path:
        if not _SESSION_ID_PATTERN.match(session_id):
            raise ValueError(f"Invalid execution id: {session_id!r}")
        return self.executions_dir / f"{session_id}.json"

    def _lock_for(self, session_id: str) -> FileLock:
        return FileLock(self.executions_dir / ".locks" / f"{session_id}.lock", self.lock_timeout)

    def save(self, session: ExecutionSession) -> Path:
        """
        Write a session, replacing any previous snapshot with the same id.

        ``updated_at`` is refreshed and never moves backwards.

        Returns:
            Path of the written file
        """
        now = utc_now()
        if not session.updated_at or now > session.updated_at:
            session.updated_at = now
        if session.created_at and session.updated_at < session.created_at:
            session.updated_at = session.created_at

        path = self._session_path(session.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(session.to_dict(), indent=2, ensure_ascii=False)

        with self._lock_for(session.id):
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{session.id}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

        logger.debug(f"Saved execution {session.id}")
        return path

    def load(self, session_id: str) -> ExecutionSession | None:
        """
        Read a session by id.

        Returns:
            The session, or None if it does not exist

        Raises:
            ValueError: If the stored file is corrupt
        """
        path = self._session_path(session_id)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return ExecutionSession.from_dict(data)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            raise ValueError(f"Corrupt execution file {path.name}: {e}") from e

    def exists(self, session_id: str) -> bool:
        return self._session_path(session_id).exists()

    def delete(self, session_id: str) -> bool:
        path = self._session_path(session_id)
        if not path.exists():
            return False
        with self._lock_for(session_id):
            path.unlink(missing_ok=True)
        return True

    def list(self) -> list[dict[str, Any]]:
        """
        Summaries of all stored sessions, newest first.

        Unreadable files are skipped with a warning.
        """
        if not self.executions_dir.exists():
            return []

        summaries = []
        for path in self.executions_dir.glob("*.json"):
            try:
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable execution file {path.name}: {e}")
                continue
            summaries.append(self._summarize(data))

        summaries.sort(key=lambda s: s.get("createdAt") or "", reverse=True)
        return summaries

    @staticmethod
    def _summarize(data: dict[str, Any]) -> dict[str, Any]:
        messages = data.get("messages") or []
        task = next((m.get("content", "") for m in messages if m.get("role") == "user"), "")
        plan = data.get("plan") or {}
        return {
            "id": data.get("id"),
            "task": task,
            "createdAt": data.get("createdAt"),
            "updatedAt": data.get("updatedAt"),
            "stepCount": len(data.get("stepExecutions") or []),
            "plannedSteps": len(plan.get("steps") or []),
            "outcome": data.get("outcome"),
            "aborted": data.get("outcome") == "aborted",
        }
