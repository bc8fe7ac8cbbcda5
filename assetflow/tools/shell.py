"""External command execution with placeholder substitution.

Commands are configured as argv lists whose items may contain
``{placeholder}`` fields, e.g. ``["npx", "babel", "--filename", "{path}"]``.
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from assetflow.errors import ToolError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of an external command execution."""

    command: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def __bool__(self) -> bool:
        return self.success

    def output_lines(self) -> List[str]:
        """Return the non-blank, stripped lines of stdout."""
        return [line.strip() for line in self.stdout.splitlines() if line.strip()]


@dataclass
class CommandTemplate:
    """An argv template with ``{name}`` substitution.

    Example:
        template = CommandTemplate(["npx", "lessc", "{entry}", "{output}"])
        template.format(entry="app/main.less", output="build/main.css")
        # -> ['npx', 'lessc', 'app/main.less', 'build/main.css']
    """

    argv: List[str]

    def format(self, **subs: str) -> List[str]:
        """Format every argv item with the substitutions.

        Items that format to an empty string are dropped, so optional flags
        can be switched off by substituting ``''``.

        Raises:
            KeyError: If the template uses an unknown placeholder
        """
        try:
            formatted = [part.format(**subs) for part in self.argv]
            return [part for part in formatted if part]
        except KeyError as e:
            available = ', '.join(sorted(subs)) or '(none)'
            raise KeyError(
                f"Unknown variable {e} in command template {self.argv!r}. "
                f"Available variables: {available}"
            )

    def __repr__(self) -> str:
        return f"CommandTemplate({self.argv!r})"


def run_command(
    argv: Sequence[str],
    cwd: Optional[Union[str, Path]] = None,
    input_text: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> CommandResult:
    """Run a command to completion and capture its output.

    Args:
        argv: Command and arguments
        cwd: Working directory
        input_text: Text written to the command's stdin
        env: Extra environment variables (merged over os.environ)

    Returns:
        CommandResult, whatever the exit status

    Raises:
        ToolError: If the executable cannot be started
    """
    argv = [str(part) for part in argv]
    full_env = None
    if env:
        full_env = os.environ.copy()
        full_env.update({key: str(value) for key, value in env.items()})

    logger.debug("Running %s", ' '.join(argv))
    try:
        proc = subprocess.run(
            argv,
            cwd=str(cwd) if cwd is not None else None,
            input=input_text,
            env=full_env,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        raise ToolError(f"Command not found: {argv[0]}")
    except OSError as e:
        raise ToolError(f"Could not run {argv[0]}: {e}")

    return CommandResult(
        command=argv,
        returncode=proc.returncode,
        stdout=proc.stdout or '',
        stderr=proc.stderr or '',
    )


def check_result(result: CommandResult, error_cls=ToolError) -> CommandResult:
    """Raise ``error_cls`` if the command exited with a non-zero status."""
    if not result.success:
        output = result.stderr.strip() or result.stdout.strip()
        raise error_cls(
            f"{' '.join(result.command)} exited with status {result.returncode}"
            + (f": {output}" if output else ''),
            output,
        )
    return result
