# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Request/response transports for Python source analysis.

A transport takes (source text, action, action arguments, cancellation token)
and returns the analysis payload or raises an AnalysisError subclass:

- SubprocessTransport: stages analyzer_script.py once per process in the temp
  directory and runs it in a child interpreter per request, passing the source
  on stdin and reading one JSON object from stdout.
- InProcessTransport: runs the same analysis functions in the current process.

Cancellation policy: a token that is already set fails the request before
anything is spawned. A token set while the child is running kills the child
(checked every poll_interval seconds).
"""

import atexit
import json
import logging
import os
import shlex
import subprocess
import tempfile
import threading
import time
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set, Tuple

from semantic_index.analyzers import analyzer_script
from semantic_index.analyzers.errors import (
    AnalysisCancelledError,
    AnalysisError,
    AnalysisTimeoutError,
    PythonNotFoundError,
)
from semantic_index.config import Config

logger = logging.getLogger(__name__)

DEFAULT_SCRIPT_PREFIX = "semantic-index-python-parser"
_RAW_OUTPUT_EXCERPT = 200


class CancellationToken(Protocol):
    """Anything with is_set(), typically threading.Event."""

    def is_set(self) -> bool: ...


class AnalyzerTransport(Protocol):
    def run(
        self,
        source: str,
        action: str,
        args: Sequence[str] = (),
        cancel: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]: ...

    def close(self) -> None: ...


def load_default_script() -> str:
    """Return the body of the bundled analyzer script."""
    return (
        resources.files("semantic_index.analyzers")
        .joinpath("analyzer_script.py")
        .read_text(encoding="utf-8")
    )


def decode_payload(raw_output: str, action: str) -> Dict[str, Any]:
    """Validate the JSON object written by the analyzer.

    Raises:
        AnalysisError: If the output is not a JSON object or reports failure.
    """
    try:
        parsed = json.loads(raw_output)
    except json.JSONDecodeError as e:
        raise AnalysisError(
            f"Failed to parse Python output: {raw_output[:_RAW_OUTPUT_EXCERPT]}"
        ) from e

    if not isinstance(parsed, dict):
        raise AnalysisError(f"Failed to parse Python output: {raw_output[:_RAW_OUTPUT_EXCERPT]}")
    if not parsed.get("success"):
        raise AnalysisError(parsed.get("error") or f"Python {action} analysis failed")
    return parsed


class SubprocessTransport:
    """Runs the staged analyzer script in a short-lived child interpreter.

    Thread Safety:
        _init_lock guards interpreter discovery and script staging.
        _active_lock guards the set of running children. Requests are
        otherwise independent: concurrent callers each get their own child.
    """

    def __init__(
        self,
        python_commands: Sequence[str] = ("python3", "python"),
        timeout_seconds: float = 30.0,
        version_check_timeout_seconds: float = 5.0,
        max_output_bytes: int = 10 * 1024 * 1024,
        script_body: Optional[str] = None,
        script_prefix: str = DEFAULT_SCRIPT_PREFIX,
        temp_dir: Optional[Path] = None,
        poll_interval: float = 0.1,
    ) -> None:
        """Initialize the transport.

        Args:
            python_commands: Interpreter invocations probed in order. Each
                entry may carry arguments (e.g. "py -3").
            timeout_seconds: Hard limit for one analysis run.
            version_check_timeout_seconds: Limit for each version probe.
            max_output_bytes: Largest stdout accepted from the child.
            script_body: Script to stage. Defaults to analyzer_script.py.
            script_prefix: File name prefix of the staged script.
            temp_dir: Directory for the staged script. Defaults to the OS temp dir.
            poll_interval: How often a running child is checked for cancellation.
        """
        self._python_commands = list(python_commands)
        self._timeout_seconds = timeout_seconds
        self._version_check_timeout_seconds = version_check_timeout_seconds
        self._max_output_bytes = max_output_bytes
        self._script_body = script_body
        self._script_prefix = script_prefix
        self._temp_dir = temp_dir
        self._poll_interval = poll_interval

        self._python_command: Optional[List[str]] = None
        self._script_path: Optional[Path] = None
        self._cleanup_registered = False
        self._init_lock = threading.Lock()

        self._active: Set[subprocess.Popen] = set()
        self._active_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config) -> "SubprocessTransport":
        return cls(
            python_commands=config.python_commands,
            timeout_seconds=config.python_timeout_seconds,
            version_check_timeout_seconds=config.python_version_check_timeout_seconds,
            max_output_bytes=config.max_output_bytes,
        )

    @property
    def script_path(self) -> Optional[Path]:
        return self._script_path

    @property
    def active_process_count(self) -> int:
        """Number of analysis children currently running."""
        with self._active_lock:
            return len(self._active)

    def get_python_command(self) -> List[str]:
        """Return the first interpreter that answers a version check.

        The result is memoized for the lifetime of the transport.

        Raises:
            PythonNotFoundError: If no candidate responds.
        """
        with self._init_lock:
            if self._python_command is not None:
                return self._python_command

            for candidate in self._python_commands:
                argv = [candidate] if os.path.isfile(candidate) else shlex.split(candidate)
                try:
                    completed = subprocess.run(
                        [*argv, "--version"],
                        capture_output=True,
                        timeout=self._version_check_timeout_seconds,
                    )
                except (OSError, subprocess.SubprocessError) as e:
                    logger.debug(f"Interpreter probe failed for {candidate!r}: {e}")
                    continue
                if completed.returncode == 0:
                    version = (completed.stdout or completed.stderr).decode(
                        "utf-8", errors="replace"
                    )
                    logger.debug(f"Using interpreter {candidate!r} ({version.strip()})")
                    self._python_command = argv
                    return argv

            raise PythonNotFoundError()

    def ensure_script_exists(self) -> Path:
        """Stage the analyzer script once and return its path."""
        with self._init_lock:
            if self._script_path is not None:
                return self._script_path

            self._register_cleanup()

            body = self._script_body if self._script_body is not None else load_default_script()
            directory = self._temp_dir or Path(tempfile.gettempdir())
            path = directory / f"{self._script_prefix}-{os.getpid()}.py"
            path.write_text(body, encoding="utf-8")
            self._script_path = path
            logger.debug(f"Staged analyzer script at {path}")
            return path

    def _register_cleanup(self) -> None:
        """Register the exit hook once. Caller must hold _init_lock."""
        if self._cleanup_registered:
            return
        self._cleanup_registered = True
        atexit.register(self._remove_script)

    def _remove_script(self) -> None:
        path = self._script_path
        if path is None:
            return
        try:
            path.unlink()
        except OSError:
            pass

    def run(
        self,
        source: str,
        action: str,
        args: Sequence[str] = (),
        cancel: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        """Run one analysis in a child interpreter.

        Raises:
            AnalysisCancelledError: If cancel is set before or during the run.
            PythonNotFoundError: If no interpreter can be found or spawned.
            AnalysisTimeoutError: If the child outlives the timeout.
            AnalysisError: If the output is unreadable or reports failure.
        """
        if cancel is not None and cancel.is_set():
            raise AnalysisCancelledError()

        command = self.get_python_command()
        script_path = self.ensure_script_exists()

        started = time.monotonic()
        try:
            process = subprocess.Popen(
                [*command, str(script_path), action, *args],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise PythonNotFoundError() from e

        with self._active_lock:
            self._active.add(process)
        try:
            stdout, stderr = self._communicate(process, source.encode("utf-8"), cancel)
        finally:
            with self._active_lock:
                self._active.discard(process)

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.debug(
            f"Python {action} finished in {elapsed_ms:.1f}ms (exit={process.returncode})",
            extra={
                "extra_fields": {
                    "event": "python_subprocess",
                    "action": action,
                    "duration_ms": round(elapsed_ms, 1),
                    "returncode": process.returncode,
                    "source_chars": len(source),
                    "output_bytes": len(stdout),
                }
            },
        )

        stderr_text = stderr.decode("utf-8", errors="replace")
        if stderr_text.strip() and "DeprecationWarning" not in stderr_text:
            logger.warning(f"Python stderr: {stderr_text.strip()}")

        if len(stdout) > self._max_output_bytes:
            raise AnalysisError(
                f"Python output exceeded {self._max_output_bytes} bytes for {action}"
            )

        return decode_payload(stdout.decode("utf-8", errors="replace"), action)

    def _communicate(
        self,
        process: subprocess.Popen,
        payload: bytes,
        cancel: Optional[CancellationToken],
    ) -> Tuple[bytes, bytes]:
        deadline = time.monotonic() + self._timeout_seconds
        pending_input: Optional[bytes] = payload
        while True:
            remaining = deadline - time.monotonic()
            try:
                return process.communicate(
                    input=pending_input, timeout=max(0.0, min(self._poll_interval, remaining))
                )
            except subprocess.TimeoutExpired:
                # communicate() keeps its buffers across retries; input is sent once
                pending_input = None
                if cancel is not None and cancel.is_set():
                    self._kill(process)
                    raise AnalysisCancelledError() from None
                if time.monotonic() >= deadline:
                    self._kill(process)
                    raise AnalysisTimeoutError() from None

    @staticmethod
    def _kill(process: subprocess.Popen) -> None:
        process.kill()
        # Reap the child and close its pipes
        process.communicate()

    def close(self) -> None:
        """Delete the staged script and forget the memoized interpreter."""
        with self._init_lock:
            self._remove_script()
            self._script_path = None
            self._python_command = None


class InProcessTransport:
    """Runs the analyzer functions directly, without a child interpreter."""

    def run(
        self,
        source: str,
        action: str,
        args: Sequence[str] = (),
        cancel: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        if cancel is not None and cancel.is_set():
            raise AnalysisCancelledError()
        result = analyzer_script.run(action, list(args), source)
        return decode_payload(json.dumps(result), action)

    def close(self) -> None:
        pass


def create_transport(config: Config) -> AnalyzerTransport:
    """Build the transport selected by config.python_transport."""
    if config.python_transport == "in_process":
        return InProcessTransport()
    return SubprocessTransport.from_config(config)
