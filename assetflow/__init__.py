"""Front-end asset pipeline with coalesced incremental rebuilds.

assetflow compiles LESS, lints and bundles CommonJS scripts, copies assets
and HTML into a build directory, and serves the result. In watch mode:

1. A WatchSource reports classified file changes in batches
2. The Orchestrator routes each batch to build tasks
3. A RunCoalescer makes sure a task never runs twice at once; requests
   made during a run collapse into one follow-up run
4. Script changes go through a DependencyReconciler, which keeps a
   long-lived incremental BundleSession and replaces it whenever a
   package.json changes

Example:
    import asyncio
    from assetflow import Pipeline, parse_config_file

    pipeline = Pipeline(parse_config_file('assetflow.yaml'))
    asyncio.run(pipeline.watch())
"""

from .coalesce import RunCoalescer, TaskCompletion, TaskStatus
from .config import PipelineConfig, parse_config_file, parse_config_string
from .pipeline import Pipeline
from .tasks import TaskRunner

__all__ = [
    'Pipeline',
    'PipelineConfig',
    'RunCoalescer',
    'TaskCompletion',
    'TaskRunner',
    'TaskStatus',
    'parse_config_file',
    'parse_config_string',
]
