from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from manual_build.domain.models import ProcessOutcome
from manual_build.services.task_registry import TaskHandle

logger = logging.getLogger(__name__)


@dataclass
class ProcessRunner:
    """
    Runs one external build tool per call and ties the child process to a
    TaskHandle: cancelling the handle kills the process.
    """
    cwd: Path

    async def run(
        self,
        argv: Sequence[str],
        handle: TaskHandle,
        *,
        input_text: Optional[str] = None,
    ) -> ProcessOutcome:
        argv = tuple(str(a) for a in argv)
        if handle.cancelled:
            return ProcessOutcome(argv=argv, returncode=None, cancelled=True)

        logger.debug("Running command: %r", argv)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if input_text is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.cwd),
            )
        except (FileNotFoundError, PermissionError) as e:
            return ProcessOutcome(argv=argv, returncode=None, spawn_error=f"Failed to execute {argv[0]}: {e}")

        def _kill() -> None:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()

        handle.on_cancel(_kill)
        try:
            stdout, stderr = await proc.communicate(
                input_text.encode("utf-8") if input_text is not None else None
            )
        except asyncio.CancelledError:
            # the awaiting task itself was cancelled (shutdown); take the child down too
            _kill()
            raise
        finally:
            handle.discard_callback(_kill)

        if handle.cancelled:
            logger.debug("Command for %s was cancelled: %r", handle.path, argv)
            return ProcessOutcome(argv=argv, returncode=proc.returncode, cancelled=True)

        return ProcessOutcome(
            argv=argv,
            returncode=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
