"""Tests for random, non-repeating page selection."""

from __future__ import annotations

import asyncio
import random

from app.database import Database
from app.models import FilterSignature
from app.services.page_tracker import PageTracker


def _run(tmp_path, scenario) -> None:
    async def runner() -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'pages.db'}")
        await database.create_all()
        try:
            await scenario(database)
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_pool_drains_without_repeats(tmp_path) -> None:
    """Every page is returned exactly once before the pool is exhausted."""

    signature = FilterSignature.from_extra("movie", {"genre": "Drama"})

    async def scenario(database: Database) -> None:
        tracker = PageTracker(database.session_factory, rng=random.Random(7))
        served: list[int] = []
        for _ in range(6):
            selection = await tracker.select_unconsumed_page(signature, 6)
            assert not selection.exhausted
            served.append(selection.page)
            await tracker.record_consumed(signature, selection.page)

        assert sorted(served) == [1, 2, 3, 4, 5, 6]
        final = await tracker.select_unconsumed_page(signature, 6)
        assert final.exhausted
        assert final.page is None
        assert final.available == 0

    _run(tmp_path, scenario)


def test_partitions_are_independent(tmp_path) -> None:
    drama = FilterSignature.from_extra("movie", {"genre": "Drama"})
    drama_series = FilterSignature.from_extra("series", {"genre": "Drama"})
    comedy = FilterSignature.from_extra("movie", {"genre": "Comedy"})

    async def scenario(database: Database) -> None:
        tracker = PageTracker(database.session_factory)
        await tracker.record_consumed(drama, 1)

        assert (await tracker.select_unconsumed_page(drama, 1)).exhausted
        assert (await tracker.select_unconsumed_page(drama_series, 1)).page == 1
        assert (await tracker.select_unconsumed_page(comedy, 1)).page == 1

    _run(tmp_path, scenario)


def test_passthrough_filters_share_a_partition(tmp_path) -> None:
    """Extras outside genre/year/rating do not reset page consumption."""

    plain = FilterSignature.from_extra("movie", {"year": "2000-2004"})
    sorted_sig = FilterSignature.from_extra(
        "movie", {"year": "2000-2004", "sort_by": "vote_count.desc"}
    )

    async def scenario(database: Database) -> None:
        tracker = PageTracker(database.session_factory)
        await tracker.record_consumed(plain, 1)
        assert (await tracker.select_unconsumed_page(sorted_sig, 1)).exhausted

    _run(tmp_path, scenario)


def test_recording_is_idempotent(tmp_path) -> None:
    signature = FilterSignature.from_extra("movie", {})

    async def scenario(database: Database) -> None:
        tracker = PageTracker(database.session_factory)
        assert await tracker.record_consumed(signature, 3)
        assert await tracker.record_consumed(signature, 3)
        assert await tracker.consumed_pages(signature) == [3]

    _run(tmp_path, scenario)


def test_total_pages_capped_at_upstream_maximum(tmp_path) -> None:
    signature = FilterSignature.from_extra("movie", {})

    async def scenario(database: Database) -> None:
        tracker = PageTracker(database.session_factory, max_pages=3)
        assert tracker.cap_total_pages(10_000) == 3
        pages = set()
        for _ in range(3):
            selection = await tracker.select_unconsumed_page(signature, 10_000)
            assert selection.page is not None and selection.page <= 3
            pages.add(selection.page)
            await tracker.record_consumed(signature, selection.page)
        assert pages == {1, 2, 3}
        assert (await tracker.select_unconsumed_page(signature, 10_000)).exhausted

    _run(tmp_path, scenario)


def test_consumption_survives_restart(tmp_path) -> None:
    """Records persist across tracker and engine instances."""

    signature = FilterSignature.from_extra("movie", {"rating": "8-10"})

    async def first(database: Database) -> None:
        await PageTracker(database.session_factory).record_consumed(signature, 1)

    async def second(database: Database) -> None:
        tracker = PageTracker(database.session_factory)
        assert await tracker.consumed_pages(signature) == [1]
        assert (await tracker.select_unconsumed_page(signature, 2)).page == 2

    _run(tmp_path, first)
    _run(tmp_path, second)
