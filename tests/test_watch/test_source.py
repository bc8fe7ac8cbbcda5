"""Tests for WatchSource.

Events are injected with ``push`` so no real observer thread is needed.
"""

import asyncio

import pytest

from assetflow.errors import PipelineIOError
from assetflow.watch import Category, ChangeEvent, WatchSource

from tests.fakes import FakeObserver

PATTERNS = {
    'asset': 'assets/**',
    'style': '*.less',
    'manifest': 'package.json',
}


@pytest.fixture
def source(tmp_path):
    return WatchSource(tmp_path, PATTERNS, observer_factory=FakeObserver)


async def next_batch(source, window=0.05):
    batches = source.batches(window=window)
    return await asyncio.wait_for(batches.__anext__(), timeout=1)


class TestPush:
    """Tests for classifying pushed paths."""

    @pytest.mark.asyncio
    async def test_classified_event(self, source, tmp_path):
        source.push(str(tmp_path / 'assets' / 'a.png'))

        batch = await next_batch(source)

        assert batch == [ChangeEvent('assets/a.png', Category.ASSET)]

    @pytest.mark.asyncio
    async def test_unmatched_dropped(self, source, tmp_path):
        source.push(str(tmp_path / 'README.md'))
        source.push(str(tmp_path / 'style.less'))

        batch = await next_batch(source)

        assert [e.path for e in batch] == ['style.less']

    @pytest.mark.asyncio
    async def test_default_ignore(self, source, tmp_path):
        source.push(str(tmp_path / 'node_modules' / 'package.json'))
        source.push(str(tmp_path / '.git' / 'package.json'))
        source.push(str(tmp_path / 'package.json'))

        batch = await next_batch(source)

        assert batch == [ChangeEvent('package.json', Category.MANIFEST)]

    @pytest.mark.asyncio
    async def test_custom_ignore(self, tmp_path):
        source = WatchSource(tmp_path, PATTERNS, ignore=['assets/tmp/**'],
                             observer_factory=FakeObserver)
        source.push(str(tmp_path / 'assets' / 'tmp' / 'x.png'))
        source.push(str(tmp_path / 'assets' / 'y.png'))

        batch = await next_batch(source)

        assert [e.path for e in batch] == ['assets/y.png']

    @pytest.mark.asyncio
    async def test_outside_base_dropped(self, source, tmp_path):
        source.push(str(tmp_path.parent / 'elsewhere.less'))
        source.push(str(tmp_path / 'style.less'))

        batch = await next_batch(source)

        assert [e.path for e in batch] == ['style.less']


class TestBatches:
    """Tests for batching."""

    @pytest.mark.asyncio
    async def test_events_in_window_form_one_batch(self, source, tmp_path):
        source.push(str(tmp_path / 'assets' / 'a.png'))
        source.push(str(tmp_path / 'assets' / 'b.png'))
        source.push(str(tmp_path / 'style.less'))

        batch = await next_batch(source)

        assert [e.category for e in batch] == [
            Category.ASSET, Category.ASSET, Category.STYLESHEET,
        ]

    @pytest.mark.asyncio
    async def test_duplicates_collapsed(self, source, tmp_path):
        for _ in range(3):
            source.push(str(tmp_path / 'style.less'))

        batch = await next_batch(source)

        assert batch == [ChangeEvent('style.less', Category.STYLESHEET)]

    @pytest.mark.asyncio
    async def test_late_event_goes_to_next_batch(self, source, tmp_path):
        batches = source.batches(window=0.05)
        source.push(str(tmp_path / 'style.less'))
        first = await asyncio.wait_for(batches.__anext__(), timeout=1)

        source.push(str(tmp_path / 'assets' / 'a.png'))
        second = await asyncio.wait_for(batches.__anext__(), timeout=1)

        assert [e.path for e in first] == ['style.less']
        assert [e.path for e in second] == ['assets/a.png']

    @pytest.mark.asyncio
    async def test_single_events(self, source, tmp_path):
        source.push(str(tmp_path / 'style.less'))
        events = source.events()

        event = await asyncio.wait_for(events.__anext__(), timeout=1)

        assert event.category is Category.STYLESHEET

    @pytest.mark.asyncio
    async def test_consumed_once(self, source, tmp_path):
        source.push(str(tmp_path / 'style.less'))
        events = source.events()
        await asyncio.wait_for(events.__anext__(), timeout=1)

        with pytest.raises(RuntimeError, match="consumed once"):
            await source.batches().__anext__()


class TestLifecycle:
    """Tests for start and stop."""

    @pytest.mark.asyncio
    async def test_start_schedules_observer(self, tmp_path):
        observers = []

        def factory():
            observers.append(FakeObserver())
            return observers[-1]

        source = WatchSource(tmp_path, PATTERNS, observer_factory=factory)
        source.start()

        assert observers[0].started
        assert observers[0].scheduled == [str(tmp_path.resolve())]

        source.stop()
        assert observers[0].stopped

    @pytest.mark.asyncio
    async def test_cannot_restart(self, source):
        source.start()
        source.stop()

        with pytest.raises(RuntimeError, match="cannot be restarted"):
            source.start()

    @pytest.mark.asyncio
    async def test_unwatchable_base(self, tmp_path):
        class BrokenObserver(FakeObserver):
            def schedule(self, handler, path, recursive=False):
                raise FileNotFoundError(path)

        source = WatchSource(tmp_path / 'missing', PATTERNS, observer_factory=BrokenObserver)

        with pytest.raises(PipelineIOError, match="Cannot watch"):
            source.start()
