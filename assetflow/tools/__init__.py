"""One-shot build tools wrapped around external commands and the filesystem."""

from .copy import MarkupCopier, StaticCopier, clean, expand, file_md5, glob_base
from .lint import Finding, Linter, parse_findings
from .serve import HttpStaticServer, ServerHandle
from .shell import CommandResult, CommandTemplate, check_result, run_command
from .stylesheet import LessCompiler

__all__ = [
    'CommandResult',
    'CommandTemplate',
    'Finding',
    'HttpStaticServer',
    'LessCompiler',
    'Linter',
    'MarkupCopier',
    'ServerHandle',
    'StaticCopier',
    'check_result',
    'clean',
    'expand',
    'file_md5',
    'glob_base',
    'parse_findings',
    'run_command',
]
