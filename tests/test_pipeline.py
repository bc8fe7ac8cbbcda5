"""Integration tests for Pipeline.

Shell one-liners stand in for lessc and the minifier so the tests only
need a POSIX shell, not node.
"""

import asyncio
import hashlib
import json
import shutil
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest

from assetflow.bundle import CommandTransform, StringifyTransform
from assetflow.config import build_config
from assetflow.errors import CompileError
from assetflow.pipeline import Pipeline
from assetflow.watch import Category

pytestmark = pytest.mark.skipif(shutil.which('sh') is None, reason="needs a POSIX shell")

LESS_AS_CAT = ['sh', '-c', 'cat "$0"', '{entry}']

# Writes a fixed output; with a map, copies the input map and records the options.
MINIFY_WITH_MAP = [
    'sh', '-c',
    'echo minified > "$1"; '
    'if [ -n "$2" ]; then cp "$0.map" "$1.map"; '
    'echo "$2 $3" > "$(dirname "$1")/options.txt"; fi',
    '{input}', '{output}', '{source_map}', '{source_map_options}',
]


def write(path, content=''):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def project(tmp_path):
    write(tmp_path / 'package.json', '{"name": "demo"}')
    write(tmp_path / 'app' / 'main.jsx', "var util = require('./util');\nutil.start();\n")
    write(tmp_path / 'app' / 'util.js', "exports.start = function () {};\n")
    write(tmp_path / 'app' / 'main.less', 'body { color: red; }\n')
    write(tmp_path / 'app' / 'assets' / 'img' / 'logo.png', 'png')
    write(tmp_path / 'app' / 'index.html', (
        '<title>TITLE</title>\n'
        '<script src="{{cache-break:main.js}}"></script>\n'
    ))
    return tmp_path


def make_config(project, **options):
    settings = {
        'disable_babel': True,
        'disable_lint': True,
        'compress_js': False,
    }
    settings.update(options)
    return build_config(
        {
            'options': settings,
            'parameters': {'TITLE': 'Demo'},
            'commands': {'less': LESS_AS_CAT},
        },
        base_path=project,
    )


class TestBuild:
    """Tests for a one-shot build."""

    @pytest.mark.asyncio
    async def test_builds_everything(self, project):
        pipeline = Pipeline(make_config(project))

        await pipeline.build()

        build = project / 'build'
        bundle = (build / 'main.js').read_text()
        assert '"app/main.jsx": [function' in bundle
        assert 'exports.start = function () {};' in bundle
        assert (build / 'main.js.map').is_file()
        assert (build / 'main.css').read_text() == 'body { color: red; }\n'
        assert (build / 'assets' / 'img' / 'logo.png').read_text() == 'png'

        digest = hashlib.md5(bundle.encode('utf-8')).hexdigest()[:10]
        html = (build / 'index.html').read_text()
        assert '<title>Demo</title>' in html
        assert f'src="main.js?{digest}"' in html

    @pytest.mark.asyncio
    async def test_build_cleans_first(self, project):
        write(project / 'build' / 'stale.txt', 'old')
        pipeline = Pipeline(make_config(project))

        await pipeline.build()

        assert not (project / 'build' / 'stale.txt').exists()

    @pytest.mark.asyncio
    async def test_compressed_bundle_keeps_map(self, project):
        config = make_config(project, compress_js=True)
        config.commands['minify'] = MINIFY_WITH_MAP
        pipeline = Pipeline(config)

        await pipeline.build()

        build = project / 'build'
        assert (build / 'main.js').read_text() == 'minified\n'
        # the stand-in minifier copies the bundle's map and records its options
        source_map = json.loads((build / 'main.js.map').read_text())
        assert source_map['version'] == 3
        assert source_map['sources'] == ['app/main.jsx', 'app/util.js']
        options = (build / 'options.txt').read_text()
        assert options.startswith("--source-map content='")
        assert options.rstrip('\n').endswith(",url='main.js.map'")

    @pytest.mark.asyncio
    async def test_compressed_bundle_without_maps(self, project):
        config = make_config(project, compress_js=True, source_maps=False)
        config.commands['minify'] = MINIFY_WITH_MAP
        pipeline = Pipeline(config)

        await pipeline.build()

        assert (project / 'build' / 'main.js').read_text() == 'minified\n'
        assert not (project / 'build' / 'main.js.map').exists()
        assert not (project / 'build' / 'options.txt').exists()

    @pytest.mark.asyncio
    async def test_failed_step_fails_build(self, project):
        config = make_config(project)
        config.commands['less'] = ['sh', '-c', 'echo "ParseError" >&2; exit 1']
        pipeline = Pipeline(config)

        with pytest.raises(CompileError, match="ParseError"):
            await pipeline.build()

        # markup is only copied after every other step succeeded
        assert not (project / 'build' / 'index.html').exists()
        assert (project / 'build' / 'main.js').is_file()

    @pytest.mark.asyncio
    async def test_lint_runs_when_enabled(self, project):
        config = make_config(project, disable_lint=False)
        config.commands['lint'] = ['sh', '-c', 'touch linted', 'eslint']
        pipeline = Pipeline(config)

        await pipeline.build()

        assert (project / 'linted').exists()

    @pytest.mark.asyncio
    async def test_registered_tasks(self, project):
        pipeline = Pipeline(make_config(project))

        assert pipeline.runner.task_names == [
            'asset-copy', 'build', 'clean', 'markup-copy', 'script-build', 'style-build',
        ]

        await pipeline.runner.run('style-build')
        assert (project / 'build' / 'main.css').is_file()
        assert (project / 'build' / 'index.html').is_file()


class TestBundling:
    """Tests for bundle configuration."""

    def test_transforms_order(self, project):
        pipeline = Pipeline(make_config(project, disable_babel=False, enable_stringify=True))

        transforms = pipeline.transforms()

        assert [type(t) for t in transforms] == [StringifyTransform, CommandTransform]
        assert transforms[1].command == ['npx', 'babel', '--filename', '{path}']

    def test_no_transforms(self, project):
        assert Pipeline(make_config(project)).transforms() == []

    def test_session_options(self, project):
        pipeline = Pipeline(make_config(project, insert_globals=True))

        session = pipeline.create_session(watch_mode=False)

        assert session.entry_point == (project / 'app' / 'main.jsx').resolve()
        assert session.output_name == 'main.js'
        assert session.source_maps is True
        assert session.insert_globals is True
        assert session.on_update is None

    @pytest.mark.asyncio
    async def test_watch_session_reused(self, project):
        pipeline = Pipeline(make_config(project))
        pipeline.watching = True

        try:
            await pipeline.bundle_scripts()
            await pipeline.bundle_scripts()
            session = pipeline.reconciler.session
            assert session.bundle_count == 2
            assert session.on_update is not None
        finally:
            pipeline.reconciler.session.invalidate()

    @pytest.mark.asyncio
    async def test_bundle_updates_reach_reconciler(self, project):
        pipeline = Pipeline(make_config(project))
        pipeline._loop = asyncio.get_running_loop()
        pipeline.reconciler.on_change = AsyncMock()

        thread = threading.Thread(target=pipeline._on_bundle_update, args=({'/p/app/util.js'},))
        thread.start()
        thread.join()
        await asyncio.sleep(0.01)
        await pipeline.orchestrator.wait_idle()

        pipeline.reconciler.on_change.assert_awaited_once_with({'/p/app/util.js'})


class TestWatchAndServe:
    """Tests for the long-running modes, with watching stubbed out."""

    def test_watch_patterns(self, project):
        pipeline = Pipeline(make_config(project))

        assert pipeline.watch_patterns() == {
            Category.STYLESHEET: ['app/**/*.less'],
            Category.ASSET: ['app/assets/**/*'],
            Category.MARKUP: ['app/index.html'],
        }

    def test_watch_ignore(self, project):
        ignore = Pipeline(make_config(project)).watch_ignore()

        assert '**/node_modules/**' in ignore
        assert 'build/**' in ignore

    def test_listen_uses_configured_port(self, project):
        server = MagicMock()
        pipeline = Pipeline(make_config(project, port=5050), server=server)

        pipeline.listen()

        server.listen.assert_called_once_with(project.resolve() / 'build', 5050)

    @pytest.mark.asyncio
    async def test_wserve_lifecycle(self, project):
        server = MagicMock()
        pipeline = Pipeline(make_config(project), server=server)
        pipeline.orchestrator.start_watch = AsyncMock()

        await pipeline.watch(serve=True)

        assert (project / 'build' / 'main.js').is_file()
        server.listen.assert_called_once()
        server.listen.return_value.close.assert_called_once_with()
        assert pipeline.reconciler.session.active is False

    @pytest.mark.asyncio
    async def test_watch_survives_failed_initial_build(self, project, caplog):
        config = make_config(project)
        config.commands['less'] = ['sh', '-c', 'exit 1']
        pipeline = Pipeline(config, server=MagicMock())
        pipeline.orchestrator.start_watch = AsyncMock()

        await pipeline.watch()

        pipeline.orchestrator.start_watch.assert_awaited_once()
        assert "Initial build failed" in caplog.text
