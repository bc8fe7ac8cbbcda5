"""The asset pipeline: concrete build tasks wired from configuration.

Tasks (all run through the RunCoalescer in watch mode):

    clean          delete the build directory
    style-build    compile LESS, then copy markup
    script-build   lint, bundle, then copy markup
    asset-copy     copy static assets, then copy markup
    markup-copy    copy HTML with parameters and cache-breaking applied
    build          clean; assets, lint, bundle, styles concurrently; markup

Example:
    config = parse_config_file('assetflow.yaml')
    pipeline = Pipeline(config)
    asyncio.run(pipeline.build())
"""

import asyncio
import logging
import tempfile
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

from assetflow.bundle import BundleResult, BundleSession, CommandTransform, StringifyTransform, Transform
from assetflow.coalesce import RunCoalescer, format_elapsed
from assetflow.config import PipelineConfig, top_directory
from assetflow.errors import PipelineError
from assetflow.logging_setup import GREEN, MAGENTA
from assetflow.orchestrator import Orchestrator
from assetflow.reconcile import SCRIPT_TASK, DependencyManager, DependencyReconciler
from assetflow.tasks import TaskRunner, run_step
from assetflow.tools import (
    CommandTemplate,
    HttpStaticServer,
    LessCompiler,
    Linter,
    MarkupCopier,
    ServerHandle,
    StaticCopier,
    check_result,
    clean,
    run_command,
)
from assetflow.watch import Category
from assetflow.watch.source import DEFAULT_IGNORE

logger = logging.getLogger(__name__)


class Pipeline:
    """Builds, watches and serves a front-end project.

    Args:
        config: Validated pipeline configuration
        server: HTTP server used by ``serve`` (tests pass a fake)
    """

    def __init__(self, config: PipelineConfig, server: Optional[HttpStaticServer] = None):
        self.config = config
        paths, options = config.paths, config.options

        self.runner = TaskRunner()
        self.coalescer = RunCoalescer(self.runner)
        self.copier = StaticCopier(paths.base)
        self.markup = MarkupCopier(paths.base, paths.build_dir, dict(config.parameters))
        self.less = LessCompiler(
            command=config.commands['less'],
            build_dir=paths.build_dir,
            cwd=paths.base,
            compress=options.compress_css,
            autoprefix=options.autoprefix,
        )
        self.linter = Linter(config.commands['lint'], paths.base, options.fail_on_lint)
        self.dependencies = DependencyManager(
            paths.base,
            prune_command=config.commands['prune'],
            install_command=config.commands['install'],
        )
        self.reconciler = DependencyReconciler(
            self.coalescer,
            session_factory=lambda: self.create_session(watch_mode=True),
            dependency_manager=self.dependencies,
        )
        self.orchestrator = Orchestrator(self.coalescer, self.reconciler, paths.base)
        self.server = server or HttpStaticServer()

        self.watching = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._markup_lock = threading.Lock()
        self._register_tasks()

    def _register_tasks(self) -> None:
        self.runner.register('clean', self.clean)
        self.runner.register('style-build', self.compile_styles, self.copy_markup)
        self.runner.register(SCRIPT_TASK, self.lint_scripts, self.bundle_scripts, self.copy_markup)
        self.runner.register('asset-copy', self.copy_assets, self.copy_markup)
        self.runner.register('markup-copy', self.copy_markup)
        self.runner.register('build', self.build)

    # -- steps -------------------------------------------------------------

    def clean(self) -> None:
        logger.info("Cleaning: %s", self.config.paths.build_dir, extra={'color': MAGENTA})
        clean(self.config.paths.build_dir)

    def compile_styles(self) -> Path:
        paths = self.config.paths
        entry = paths.resolve(paths.less)
        logger.info("Compiling less to css: %s to %s", paths.less, self.less.output_for(entry))
        return self.less.compile(entry)

    def lint_scripts(self) -> None:
        if self.config.options.disable_lint:
            logger.debug("Javascript linting skipped")
            return
        logger.info("Linting javascript: %s", ', '.join(self.config.paths.lint))
        self.linter.run(self.config.paths.lint)

    async def bundle_scripts(self) -> BundleResult:
        """Bundle with the shared watch session, or a cold one-shot session."""
        if self.watching:
            session = await self.reconciler.acquire_session()
        else:
            session = self.create_session(watch_mode=False)

        out = self.config.paths.build_dir / self.config.js_out
        logger.info("Bundling javascript: %s to %s", self.config.paths.js, out)
        result = await asyncio.to_thread(session.bundle)
        await asyncio.to_thread(self.write_bundle, result)
        return result

    def copy_assets(self) -> List[Path]:
        paths = self.config.paths
        dest = paths.build_dir / top_directory(paths.assets)
        logger.info("Copying static assets: %s to %s", paths.assets, dest)
        return self.copier.copy(paths.assets, dest)

    def copy_markup(self) -> List[Path]:
        paths = self.config.paths
        logger.info("Copying html: %s to %s", paths.html, paths.build_dir)
        # Several tasks end with this step; never write the same file twice at once.
        with self._markup_lock:
            return self.markup.copy(paths.html)

    # -- bundling ----------------------------------------------------------

    def transforms(self) -> List[Transform]:
        """Source transforms in application order: stringify, then babel."""
        options = self.config.options
        transforms: List[Transform] = []
        if options.enable_stringify:
            transforms.append(StringifyTransform(minify=True))
        if not options.disable_babel:
            transforms.append(CommandTransform(
                command=self.config.commands['babel'],
                cwd=self.config.paths.base,
            ))
        return transforms

    def create_session(self, watch_mode: bool) -> BundleSession:
        paths, options = self.config.paths, self.config.options
        return BundleSession(
            paths.resolve(paths.js),
            transforms=self.transforms(),
            watch_mode=watch_mode,
            base=paths.base,
            source_maps=options.source_maps,
            detect_globals=options.detect_globals,
            insert_globals=options.insert_globals,
            on_update=self._on_bundle_update if watch_mode else None,
            delay=options.debounce,
            output_name=self.config.js_out,
        )

    def write_bundle(self, result: BundleResult) -> Path:
        out = self.config.paths.build_dir / self.config.js_out
        out.parent.mkdir(parents=True, exist_ok=True)
        if self.config.options.compress_js:
            self.minify(result, out)
            return out
        out.write_text(result.code, encoding='utf-8')
        if result.source_map is not None:
            out.with_name(out.name + '.map').write_text(result.source_map_json(), encoding='utf-8')
        return out

    def minify(self, result: BundleResult, out: Path) -> None:
        """Minify the bundle into ``out``.

        The minify command reads ``{input}`` and writes ``{output}``. When the
        bundle has a source map it is handed over through
        ``{source_map} {source_map_options}`` and the command writes the
        minified map next to ``{output}``.
        """
        with tempfile.TemporaryDirectory(prefix='assetflow-') as tmp:
            source = Path(tmp) / out.name
            source.write_text(result.code, encoding='utf-8')
            subs = {'input': str(source), 'output': str(out),
                    'source_map': '', 'source_map_options': ''}
            if result.source_map is not None:
                source_map = source.with_name(source.name + '.map')
                source_map.write_text(result.source_map_json(), encoding='utf-8')
                subs['source_map'] = '--source-map'
                subs['source_map_options'] = f"content='{source_map}',url='{out.name}.map'"

            argv = CommandTemplate(self.config.commands['minify']).format(**subs)
            check_result(run_command(argv, cwd=self.config.paths.base))

    def _on_bundle_update(self, paths) -> None:
        """Bundle watcher thread -> event loop."""
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self.orchestrator.submit_script_changes, paths)

    # -- modes ---------------------------------------------------------------

    async def build(self) -> None:
        """Clean, then build everything once.

        Raises:
            PipelineError: The first failure among the concurrent steps
        """
        start = time.monotonic()
        await run_step(self.clean)
        results = await asyncio.gather(
            run_step(self.copy_assets),
            run_step(self.lint_scripts),
            self.bundle_scripts(),
            run_step(self.compile_styles),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            raise errors[0]
        await run_step(self.copy_markup)
        logger.info(
            "Build finished successfully in %s",
            format_elapsed((time.monotonic() - start) * 1000),
            extra={'color': GREEN},
        )

    def watch_patterns(self) -> Dict[Category, List[str]]:
        """Patterns for the watch source.

        Scripts and package.json files are watched by the bundle session
        itself, which knows exactly which files the bundle uses.
        """
        paths = self.config.paths
        return {
            Category.STYLESHEET: [paths.all_less],
            Category.ASSET: [paths.assets],
            Category.MARKUP: [paths.html],
        }

    def watch_ignore(self) -> List[str]:
        ignore = list(DEFAULT_IGNORE)
        try:
            build = self.config.paths.build_dir.relative_to(self.config.paths.base)
            ignore.append(f"{build.as_posix()}/**")
        except ValueError:
            pass
        return ignore

    async def watch(self, serve: bool = False) -> None:
        """Build once, then rebuild on changes until cancelled."""
        self.watching = True
        self._loop = asyncio.get_running_loop()
        self.reconciler.current_session()

        try:
            await self.build()
        except PipelineError as e:
            logger.error("Initial build failed: %s", e)

        handle = self.listen() if serve else None
        try:
            await self.orchestrator.start_watch(
                self.watch_patterns(),
                window=self.config.options.debounce,
                ignore=self.watch_ignore(),
            )
        finally:
            if handle is not None:
                handle.close()
            session = self.reconciler.session
            if session is not None:
                session.invalidate()

    async def serve(self) -> None:
        """Build once, then serve the build directory until cancelled."""
        await self.build()
        handle = self.listen()
        try:
            await asyncio.Event().wait()
        finally:
            handle.close()

    def listen(self, port: Optional[int] = None) -> ServerHandle:
        port = self.config.options.port if port is None else port
        return self.server.listen(self.config.paths.build_dir, port)
