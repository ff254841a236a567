"""
ykman Executor - Serialized Subprocess Access to the YubiKey

This module locates the ykman binary and runs it. Every YubiKey
operation goes through a single executor, and the executor allows
only one ykman process at a time: ykman talks to one shared USB
device and concurrent invocations race against it.

Classes:
    CommandExecutor: Abstract base class for ykman execution
    YkmanExecutor: asyncio subprocess implementation

Errors:
    YkmanError: Base class
    ToolNotFoundError: ykman binary not found
    CommandFailedError: ykman exited with a nonzero status
    ParseError: ykman output could not be decoded or parsed
    NoDeviceConnectedError: No YubiKey is connected

Example:
    executor = YkmanExecutor()
    if executor.is_available():
        output = await executor.execute(YkmanCommand.list_serials())
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Any
import asyncio
import os
import logging

from .types import YkmanCommand

logger = logging.getLogger(__name__)

# Apple Silicon Homebrew, Intel Homebrew, distro packages
DEFAULT_YKMAN_PATHS = (
    "/opt/homebrew/bin/ykman",
    "/usr/local/bin/ykman",
    "/usr/bin/ykman",
)


class YkmanError(Exception):
    """Base exception for ykman errors."""
    pass


class ToolNotFoundError(YkmanError):
    """ykman binary could not be located."""

    def __init__(self) -> None:
        super().__init__("ykman not found. Please install YubiKey Manager.")


class CommandFailedError(YkmanError):
    """ykman exited with a nonzero status."""

    def __init__(self, detail: str) -> None:
        self.detail = detail.strip()
        super().__init__(f"Command failed: {self.detail}")


class ParseError(YkmanError):
    """ykman output could not be decoded or parsed."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Parse error: {detail}")


class NoDeviceConnectedError(YkmanError):
    """No YubiKey is connected."""

    def __init__(self) -> None:
        super().__init__("No YubiKey detected.")


class CommandExecutor(ABC):
    """
    Abstract base class for ykman execution.

    Implementations must serialize ``run`` calls so that at most one
    ykman process is in flight at any instant.
    """

    @abstractmethod
    def find_binary(self) -> Optional[str]:
        """
        Resolve the ykman binary path.

        Returns:
            Path to an executable ykman, or None if not installed
        """
        pass

    @abstractmethod
    async def run(self, args: Sequence[str]) -> str:
        """
        Run ykman with the given arguments.

        Args:
            args: Arguments passed to ykman

        Returns:
            Decoded stdout

        Raises:
            ToolNotFoundError: If ykman cannot be resolved
            CommandFailedError: If ykman exits nonzero or cannot start
            ParseError: If stdout is not valid UTF-8
        """
        pass

    def is_available(self) -> bool:
        """Check whether ykman can be resolved."""
        return self.find_binary() is not None

    async def execute(self, command: YkmanCommand) -> str:
        """Run a YkmanCommand."""
        return await self.run(command.to_args())


class YkmanExecutor(CommandExecutor):
    """
    asyncio subprocess implementation of CommandExecutor.

    The first executable candidate path is cached for the lifetime
    of the executor; it is never re-probed.

    Attributes:
        candidate_paths: Ordered paths probed for the ykman binary
    """

    def __init__(self, candidate_paths: Optional[Sequence[str]] = None):
        """
        Initialize the executor.

        Args:
            candidate_paths: Paths to probe, in order (defaults to
                the Homebrew and distro locations)
        """
        self.candidate_paths: List[str] = list(candidate_paths or DEFAULT_YKMAN_PATHS)
        self._cached_path: Optional[str] = None
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def find_binary(self) -> Optional[str]:
        if self._cached_path:
            return self._cached_path

        for path in self.candidate_paths:
            if os.path.isfile(path) and os.access(path, os.X_OK):
                logger.info(f"Using ykman at {path}")
                self._cached_path = path
                return path

        logger.debug(f"ykman not found in {self.candidate_paths}")
        return None

    async def run(self, args: Sequence[str]) -> str:
        binary = self.find_binary()
        if binary is None:
            raise ToolNotFoundError()

        async with self._get_lock():
            logger.debug(f"ykman {' '.join(args)}")
            try:
                process = await asyncio.create_subprocess_exec(
                    binary, *args,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE
                )
                stdout, stderr = await process.communicate()
            except OSError as e:
                raise CommandFailedError(str(e)) from e

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip() or "Unknown error"
            logger.debug(f"ykman exited {process.returncode}: {message}")
            raise CommandFailedError(message)

        try:
            return stdout.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"ykman output is not valid UTF-8: {e}") from e

    def _get_lock(self) -> asyncio.Lock:
        # Bound to the loop that runs ykman, not the one that built the executor
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    @property
    def busy(self) -> bool:
        """True while a ykman process is running."""
        return self._lock is not None and self._lock.locked()


# ============================================================
# Factory Function
# ============================================================

def create_executor(
    executor_type: str = "ykman",
    **kwargs: Any
) -> CommandExecutor:
    """
    Create a command executor.

    Args:
        executor_type: Executor type ("ykman")
        **kwargs: Executor-specific options

    Returns:
        CommandExecutor instance

    Raises:
        ValueError: If executor type unknown
    """
    if executor_type == "ykman":
        return YkmanExecutor(**kwargs)

    raise ValueError(f"Unknown executor type: {executor_type}")
