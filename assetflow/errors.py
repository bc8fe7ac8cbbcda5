"""Error types raised by the asset pipeline.

Everything a single task run may fail with derives from PipelineError and
is caught at the task-run boundary (see RunCoalescer). SessionStateError is
outside that hierarchy: it signals a programming error and
must propagate.
"""


class PipelineError(Exception):
    """Base class for recoverable pipeline failures.

    Attributes:
        output: Captured tool output, when the failure came from a command
    """

    def __init__(self, message: str, output: str = ''):
        super().__init__(message)
        self.output = output


class ConfigError(PipelineError):
    """Error parsing or validating the pipeline configuration."""
    pass


class ToolError(PipelineError):
    """An external tool (compiler, linter, bundler) failed."""
    pass


class CompileError(ToolError):
    """The stylesheet compiler failed."""
    pass


class LintError(ToolError):
    """Lint findings were reported and lint failures are fatal."""
    pass


class BundleError(ToolError):
    """Script bundling failed (unresolvable module, transform failure...)."""
    pass


class PipelineIOError(PipelineError):
    """Copying, cleaning or watching files failed."""
    pass


class DependencyError(PipelineError):
    """Pruning or installing dependencies failed."""
    pass


class SessionStateError(RuntimeError):
    """bundle() was called on an invalidated BundleSession."""
    pass
