"""Pre/post job hook commands."""

import logging
import os
import subprocess
from typing import Optional

from .. import __util__
from ..errors import StageError

logger = logging.getLogger(__name__)


def run_hook(
    command: str,
    env: dict[str, str],
    timeout: Optional[float] = None,
) -> str:
    """Run a hook command through the shell.

    Args:
        command: Shell command line
        env: Extra environment variables (ABNG_*)
        timeout: Seconds before the hook is abandoned

    Returns:
        Captured output of the command

    Raises:
        StageError: If the command fails, times out or cannot be started
    """
    full_env = os.environ.copy()
    full_env.update(env)
    try:
        proc = __util__.exec_subprocess(
            command,
            shell=True,
            env=full_env,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise StageError(f"Hook timed out after {e.timeout}s: {command}") from e
    except OSError as e:
        raise StageError(f"Hook could not be started: {e}") from e

    output = (proc.stdout or "") + (proc.stderr or "")
    for line in output.splitlines():
        logger.debug("hook: %s", line)
    if proc.returncode != 0:
        raise StageError(f"Hook exited with code {proc.returncode}: {command}")
    return output
