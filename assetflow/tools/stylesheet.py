"""LESS compilation via the ``lessc`` command line tool."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from assetflow.errors import CompileError, ToolError

from .shell import CommandTemplate, check_result, run_command

logger = logging.getLogger(__name__)


@dataclass
class LessCompiler:
    """Compiles a LESS entry point into ``<build_dir>/<name>.css``.

    The command template may use ``{entry}``, ``{output}``, ``{compress}``
    and ``{autoprefix}``; the last two become empty (and are dropped) when
    the corresponding option is off.
    """

    command: List[str]
    build_dir: Path
    cwd: Path
    compress: bool = True
    autoprefix: Optional[str] = None

    def output_for(self, entry: Path) -> Path:
        return self.build_dir / entry.with_suffix('.css').name

    def compile(self, entry: Path) -> Path:
        """Compile ``entry`` and return the written stylesheet path.

        Raises:
            CompileError: If lessc fails or cannot be started
        """
        entry = Path(entry)
        output = self.output_for(entry)
        output.parent.mkdir(parents=True, exist_ok=True)

        argv = CommandTemplate(self.command).format(
            entry=str(entry),
            output=str(output),
            compress='--compress' if self.compress else '',
            autoprefix=f'--autoprefix={self.autoprefix}' if self.autoprefix else '',
        )
        try:
            result = check_result(run_command(argv, cwd=self.cwd), CompileError)
        except CompileError:
            raise
        except ToolError as e:
            raise CompileError(str(e), e.output)

        # Templates without {output} make lessc print the css instead.
        if not output.exists():
            output.write_text(result.stdout, encoding='utf-8')
        return output
