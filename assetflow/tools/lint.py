"""Script linting through an external linter.

The linter must print findings in "unix" format, one per line:

    app/main.js:12:5: 'foo' is defined but never used. [no-unused-vars]
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence

from assetflow.errors import LintError, ToolError

from .copy import expand
from .shell import CommandTemplate, run_command

logger = logging.getLogger(__name__)

_FINDING = re.compile(r'^(?P<path>.+?):(?P<line>\d+):(?P<column>\d+):\s*(?P<message>.*)$')


@dataclass(frozen=True)
class Finding:
    """A single lint finding."""
    path: str
    line: int
    column: int
    message: str

    def __str__(self) -> str:
        return f"{self.path}:{self.line}:{self.column}: {self.message}"


def parse_findings(output: str) -> List[Finding]:
    """Parse unix-format linter output; other lines are ignored."""
    findings = []
    for line in output.splitlines():
        match = _FINDING.match(line.strip())
        if match:
            findings.append(Finding(
                path=match.group('path'),
                line=int(match.group('line')),
                column=int(match.group('column')),
                message=match.group('message'),
            ))
    return findings


@dataclass
class Linter:
    """Lints script files; findings are reported, not fatal by default."""

    command: List[str]
    base: Path
    fail_on_findings: bool = False

    def collect(self, patterns: Iterable[str]) -> List[Path]:
        """Expand glob patterns into the files to lint."""
        files: List[Path] = []
        for pattern in patterns:
            for path in expand(self.base, pattern):
                if path not in files:
                    files.append(path)
        return files

    def lint(self, paths: Sequence[Path]) -> List[Finding]:
        """Lint ``paths`` and return the findings.

        Raises:
            ToolError: If the linter crashed (non-zero exit, no findings)
            LintError: If there are findings and ``fail_on_findings`` is set
        """
        if not paths:
            return []

        argv = CommandTemplate(self.command).format() + [str(p) for p in paths]
        result = run_command(argv, cwd=self.base)
        findings = parse_findings(result.stdout)

        if not result.success and not findings:
            output = result.stderr.strip() or result.stdout.strip()
            raise ToolError(f"Linter exited with status {result.returncode}: {output}", output)

        for finding in findings:
            logger.warning("%s", finding)
        if findings:
            logger.warning("%d lint finding(s)", len(findings))
            if self.fail_on_findings:
                raise LintError(f"{len(findings)} lint finding(s)", result.stdout)
        return findings

    def run(self, patterns: Iterable[str]) -> List[Finding]:
        """Collect files matching ``patterns`` and lint them."""
        return self.lint(self.collect(patterns))
