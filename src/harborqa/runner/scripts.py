"""before/after lifecycle scripts."""

from __future__ import annotations

import logging
import shlex
import subprocess
import time
from pathlib import Path

from harborqa.core.cancellation import CancellationToken
from harborqa.errors.base import ErrorContext, OperationCancelledError, ScriptError

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.2


def run_script(
    command: str,
    cwd: str | Path,
    token: CancellationToken,
    timeout: float | None = None,
    context: ErrorContext | None = None,
) -> str:
    """Run ``command`` in ``cwd`` and return its combined output.

    The process is killed if ``token`` is cancelled or ``timeout`` elapses.

    Raises:
        ScriptError: the command cannot be parsed, is missing, timed out or
            exited non-zero.
        OperationCancelledError: ``token`` was cancelled while it ran.
    """
    try:
        args = shlex.split(command)
    except ValueError as e:
        raise ScriptError(command, None, f"cannot parse command: {e}", context=context, cause=e) from e
    if not args:
        return ""

    logger.debug(f"Running script: {command} (cwd={cwd})")
    try:
        proc = subprocess.Popen(
            args,
            cwd=str(cwd),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except OSError as e:
        raise ScriptError(command, None, str(e), context=context, cause=e) from e

    started = time.monotonic()
    while True:
        try:
            output, _ = proc.communicate(timeout=_POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            if token.cancelled:
                proc.kill()
                proc.communicate()
                raise OperationCancelledError(f"script '{command}' cancelled", context=context)
            if timeout is not None and time.monotonic() - started > timeout:
                proc.kill()
                output, _ = proc.communicate()
                raise ScriptError(command, None, f"timed out after {timeout}s\n{output or ''}", context=context)

    if proc.returncode != 0:
        raise ScriptError(command, proc.returncode, output or "", context=context)
    return output or ""
