"""
Host power actions.

The shutdown guard only decides *that* and *when* an action fires; the
HostControl implementations here decide *how*. SystemHostControl runs the
platform's own power management commands with timeout handling and
detailed result tracking.
"""

import asyncio
import logging
import math
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class HostAction(str, Enum):
    """Power actions the host can be asked to perform."""
    POWEROFF = "poweroff"
    HIBERNATE = "hibernate"  # suspend to disk
    SLEEP = "sleep"  # suspend to RAM


class HostActionStatus(Enum):
    """Outcome of a host action request."""
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"


@dataclass
class HostActionResult:
    """Result of a host action request."""

    action: str
    status: HostActionStatus
    command: str
    exit_code: Optional[int] = None
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)

    @property
    def success(self) -> bool:
        return self.status == HostActionStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            'action': self.action,
            'status': self.status.value,
            'command': self.command,
            'exit_code': self.exit_code,
            'stdout': self.stdout,
            'stderr': self.stderr,
            'error_message': self.error_message,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'success': self.success,
        }


class HostControl(ABC):
    """Capability to power down or suspend the local host."""

    @abstractmethod
    async def execute(self, action: HostAction, delay: int = 0) -> HostActionResult:
        """Perform ``action`` after ``delay`` seconds."""

    @abstractmethod
    async def abort(self) -> HostActionResult:
        """Cancel a pending action where the platform supports it."""


def _linux_commands(action: Optional[HostAction], delay: int) -> List[str]:
    if action is None:
        return ["shutdown", "-c"]
    if action == HostAction.POWEROFF:
        # shutdown(8) schedules in whole minutes.
        when = "now" if delay <= 0 else f"+{math.ceil(delay / 60)}"
        return ["shutdown", "-P", when]
    if action == HostAction.HIBERNATE:
        return ["systemctl", "hibernate"]
    return ["systemctl", "suspend"]


def _darwin_commands(action: Optional[HostAction], delay: int) -> List[str]:
    if action is None:
        return ["killall", "shutdown"]
    if action == HostAction.POWEROFF:
        when = "now" if delay <= 0 else f"+{math.ceil(delay / 60)}"
        return ["sudo", "shutdown", "-h", when]
    if action == HostAction.HIBERNATE:
        # hibernatemode 25 writes memory to disk and powers off; the setting persists.
        return ["/bin/sh", "-c", "sudo pmset -a hibernatemode 25 && pmset sleepnow"]
    return ["pmset", "sleepnow"]


def _windows_commands(action: Optional[HostAction], delay: int) -> List[str]:
    if action is None:
        return ["shutdown", "/a"]
    if action == HostAction.POWEROFF:
        return ["shutdown", "/s", "/t", str(max(delay, 0))]
    if action == HostAction.HIBERNATE:
        return ["shutdown", "/h"]
    return ["rundll32.exe", "powrprof.dll,SetSuspendState", "0,1,0"]


class SystemHostControl(HostControl):
    """
    Runs the host's power management commands as subprocesses.
    """

    COMMAND_BUILDERS = {
        'linux': _linux_commands,
        'darwin': _darwin_commands,
        'win32': _windows_commands,
    }

    def __init__(self, dry_run: bool = False, timeout: float = 30.0, platform: Optional[str] = None):
        self.dry_run = dry_run
        self.timeout = timeout
        self.platform = platform or sys.platform

    def build_command(self, action: Optional[HostAction], delay: int = 0) -> Optional[List[str]]:
        """
        Get the command line for an action on this platform.

        ``action=None`` builds the abort command. Returns None when the
        platform is not supported.
        """
        for prefix, builder in self.COMMAND_BUILDERS.items():
            if self.platform.startswith(prefix):
                return builder(action, delay)
        return None

    async def execute(self, action: HostAction, delay: int = 0) -> HostActionResult:
        return await self._run(action.value, self.build_command(action, delay))

    async def abort(self) -> HostActionResult:
        return await self._run("abort", self.build_command(None))

    async def _run(self, name: str, argv: Optional[List[str]]) -> HostActionResult:
        if argv is None:
            logger.error("Host action '%s' is not supported on %s", name, self.platform)
            return HostActionResult(
                action=name,
                status=HostActionStatus.UNSUPPORTED,
                command="",
                error_message=f"Unsupported platform {self.platform}",
            )

        command = " ".join(argv)
        if self.dry_run:
            logger.info("DRY RUN: Would execute '%s'", command)
            return HostActionResult(
                action=name,
                status=HostActionStatus.SUCCESS,
                command=f"DRY RUN: {command}",
                exit_code=0,
                stdout="Dry run - command not executed",
            )

        logger.warning("Executing host action '%s': %s", name, command)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Failed to start '%s': %s", command, e)
            return HostActionResult(
                action=name,
                status=HostActionStatus.FAILED,
                command=command,
                error_message=str(e),
            )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            logger.error("Host action '%s' timed out after %ss", name, self.timeout)
            return HostActionResult(
                action=name,
                status=HostActionStatus.TIMEOUT,
                command=command,
                error_message=f"Timed out after {self.timeout}s",
            )

        result = HostActionResult(
            action=name,
            status=HostActionStatus.SUCCESS if process.returncode == 0 else HostActionStatus.FAILED,
            command=command,
            exit_code=process.returncode,
            stdout=stdout.decode(errors="replace").strip(),
            stderr=stderr.decode(errors="replace").strip(),
        )
        if not result.success:
            result.error_message = result.stderr or f"Exit code {process.returncode}"
            logger.error("Host action '%s' failed: %s", name, result.error_message)
        return result
