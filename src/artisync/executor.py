"""Launch the configured server commands one after another."""

from __future__ import annotations

import asyncio
import shlex

import structlog

log = structlog.get_logger()


class Executor:
    def __init__(self, commands: list[str]) -> None:
        self._commands = commands

    async def run(self) -> list[int]:
        """Run every command to completion and return their exit codes.

        Raises ``OSError`` if a command cannot be started.
        """
        codes: list[int] = []
        for command in self._commands:
            args = shlex.split(command)
            if not args:
                continue
            log.info("executing", command=command)
            process = await asyncio.create_subprocess_exec(*args)
            code = await process.wait()
            if code != 0:
                log.warning("process_failed", command=command, returncode=code)
            else:
                log.info("process_exited", command=command)
            codes.append(code)
        return codes
