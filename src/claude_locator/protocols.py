"""Protocol definitions for dependency injection.

These protocols define the seams between the detectors and the outside world:
- CommandRunner: every external process goes through it, so tests can script
  command output without a real WSL, Git Bash or version manager
- SettingsStore: the application settings holding the user's CLI override
"""

from typing import TYPE_CHECKING, Optional, Protocol, Sequence, Union, runtime_checkable

from .models import ExecutionOptions, ProcessResult

if TYPE_CHECKING:
    from .execution import InteractiveSession


Command = Union[str, Sequence[str]]


@runtime_checkable
class CommandRunner(Protocol):
    """Protocol for running external commands."""

    async def run(
        self,
        command: Command,
        options: Optional[ExecutionOptions] = None
    ) -> ProcessResult:
        """Run a command to completion.

        Args:
            command: Shell command line (str) or argv sequence (no shell)
            options: Timeout, working directory, environment, encoding

        Returns:
            ProcessResult; failures and timeouts are results, not exceptions
        """
        ...

    async def spawn(
        self,
        command: str,
        args: Sequence[str] = (),
        options: Optional[ExecutionOptions] = None
    ) -> "InteractiveSession":
        """Start a long-lived process with piped stdio."""
        ...


@runtime_checkable
class SettingsStore(Protocol):
    """Protocol for the application settings holding the CLI override."""

    def get_cli_path(self) -> Optional[str]:
        """Return the user-configured CLI path, or None."""
        ...

    def set_cli_path(self, path: str) -> None:
        """Persist a user-configured CLI path."""
        ...

    def clear_cli_path(self) -> None:
        """Remove the user-configured CLI path."""
        ...

