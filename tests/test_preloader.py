"""Tests for the four preload policies."""

from __future__ import annotations

import asyncio
import threading

import pytest

from cosmoquest.errors import ContentProviderError, PreloadFailed
from cosmoquest.models import Difficulty, FactBlock, PreloadStatus
from cosmoquest.services.preloader import (
    BatchPreloader,
    LevelPreloader,
    LookaheadPreloader,
    OnDemandPreloader,
    PreloadPolicy,
    make_preloader,
)
from cosmoquest.services.sequencer import ContentSequencer


def _build(cls, provider, settings, difficulty=Difficulty.STELLAR_SYSTEMS):
    seq = ContentSequencer(settings.facts_per_level, settings.quiz_interval)
    return seq, cls(provider, seq, difficulty, settings)


def _positions(provider) -> list[int]:
    return [call[0] for call in provider.fact_calls]


class TestFactory:

    @pytest.mark.parametrize("policy, cls", [
        ("on_demand", OnDemandPreloader),
        ("lookahead", LookaheadPreloader),
        ("batch", BatchPreloader),
        ("level", LevelPreloader),
    ])
    def test_make_preloader(self, policy, cls, fake_provider, make_settings) -> None:
        settings = make_settings()
        seq = ContentSequencer(4, 2)
        preloader = make_preloader(policy, fake_provider, seq, Difficulty.FOUNDATIONS, settings)
        assert isinstance(preloader, cls)
        assert preloader.policy is PreloadPolicy(policy)


class TestOnDemand:

    @pytest.mark.asyncio
    async def test_prepare_fetches_nothing(self, fake_provider, make_settings) -> None:
        seq, preloader = _build(OnDemandPreloader, fake_provider, make_settings())
        await preloader.prepare()
        assert preloader.status is PreloadStatus.DONE
        assert fake_provider.fact_calls == []

    @pytest.mark.asyncio
    async def test_ensure_fetches_fact_with_image_and_known_facts(self, fake_provider, make_settings) -> None:
        seq, preloader = _build(OnDemandPreloader, fake_provider, make_settings())
        await preloader.ensure(0)
        seq.advance()
        await preloader.ensure(1)
        block = seq.advance()
        assert isinstance(block, FactBlock)
        assert block.fact.position == 2
        assert block.fact.image_url == "data:image/jpeg;base64,Illustration2"
        assert fake_provider.fact_calls == [(1, [], 2), (2, ["Fact 1"], 2)]

    @pytest.mark.asyncio
    async def test_quiz_uses_preceding_facts(self, fake_provider, make_settings) -> None:
        seq, preloader = _build(OnDemandPreloader, fake_provider, make_settings())
        for index in range(3):
            await preloader.ensure(index)
            seq.advance()
        assert fake_provider.quiz_calls == [["Fact 1", "Fact 2"]]

    @pytest.mark.asyncio
    async def test_image_failure_degrades(self, provider_cls, make_settings) -> None:
        provider = provider_cls(fail_images=True)
        seq, preloader = _build(OnDemandPreloader, provider, make_settings())
        await preloader.ensure(0)
        assert seq.slots[0].fact.image_url is None

    @pytest.mark.asyncio
    async def test_images_can_be_disabled(self, fake_provider, make_settings) -> None:
        seq, preloader = _build(OnDemandPreloader, fake_provider, make_settings(generate_images=False))
        await preloader.ensure(0)
        assert fake_provider.image_calls == []
        assert seq.slots[0].fact.image_url is None

    @pytest.mark.asyncio
    async def test_fact_failure_propagates(self, provider_cls, make_settings) -> None:
        provider = provider_cls(fail_once={1})
        seq, preloader = _build(OnDemandPreloader, provider, make_settings())
        with pytest.raises(ContentProviderError):
            await preloader.ensure(0)
        assert not seq.is_filled(0)
        await preloader.ensure(0)
        assert seq.is_filled(0)


class TestLookahead:

    @pytest.mark.asyncio
    async def test_prepare_prefetches_first_block(self, fake_provider, make_settings) -> None:
        seq, preloader = _build(LookaheadPreloader, fake_provider, make_settings())
        await preloader.prepare()
        assert preloader.status is PreloadStatus.DONE
        assert seq.is_filled(0)
        assert not seq.is_filled(1)

    @pytest.mark.asyncio
    async def test_next_block_prefetched_while_current_shown(self, fake_provider, make_settings) -> None:
        seq, preloader = _build(LookaheadPreloader, fake_provider, make_settings())
        await preloader.prepare()
        await preloader.ensure(0)
        seq.advance()
        preloader.schedule_ahead(seq.cursor)
        assert preloader.in_flight
        await preloader.ensure(1)
        assert _positions(fake_provider) == [1, 2]
        assert not preloader.in_flight

    @pytest.mark.asyncio
    async def test_schedule_ahead_does_not_duplicate(self, fake_provider, make_settings) -> None:
        seq, preloader = _build(LookaheadPreloader, fake_provider, make_settings())
        preloader.schedule_ahead(0)
        preloader.schedule_ahead(0)
        await preloader.ensure(0)
        assert _positions(fake_provider) == [1]

    @pytest.mark.asyncio
    async def test_failed_first_prefetch_is_not_reported_as_failed(self, provider_cls, make_settings) -> None:
        provider = provider_cls(fail_once={1})
        seq, preloader = _build(LookaheadPreloader, provider, make_settings())
        await preloader.prepare()
        assert preloader.status is PreloadStatus.DONE
        assert not seq.is_filled(0)
        await preloader.ensure(0)
        assert seq.is_filled(0)

    @pytest.mark.asyncio
    async def test_failed_prefetch_falls_back_to_on_demand(self, provider_cls, make_settings) -> None:
        provider = provider_cls(fail_once={2})
        seq, preloader = _build(LookaheadPreloader, provider, make_settings())
        await preloader.prepare()
        seq.advance()
        preloader.schedule_ahead(seq.cursor)
        await preloader.ensure(1)
        assert seq.is_filled(1)
        assert _positions(provider) == [1, 2, 2]

    @pytest.mark.asyncio
    async def test_close_discards_inflight_prefetch(self, provider_cls, make_settings) -> None:
        gate = threading.Event()
        provider = provider_cls(gate=gate)
        seq, preloader = _build(LookaheadPreloader, provider, make_settings())
        preloader.schedule_ahead(0)
        await asyncio.sleep(0.01)
        preloader.close()
        gate.set()
        await asyncio.sleep(0.05)
        assert not seq.is_filled(0)
        assert preloader.closed


class TestBatch:

    @pytest.mark.asyncio
    async def test_prepare_fetches_first_batch_with_its_quiz(self, fake_provider, make_settings) -> None:
        seq, preloader = _build(BatchPreloader, fake_provider, make_settings(preload_batch_size=2))
        await preloader.prepare()
        assert [seq.is_filled(i) for i in range(len(seq))] == [True, True, True, False, False, False]
        assert fake_provider.quiz_calls == [["Fact 1", "Fact 2"]]

    @pytest.mark.asyncio
    async def test_next_batch_starts_when_exhausted(self, fake_provider, make_settings) -> None:
        seq, preloader = _build(BatchPreloader, fake_provider, make_settings(preload_batch_size=2))
        await preloader.prepare()
        seq.advance()
        preloader.schedule_ahead(seq.cursor)
        assert not preloader.in_flight
        seq.advance()
        seq.advance()
        preloader.schedule_ahead(seq.cursor)
        assert preloader.in_flight
        await preloader.ensure(5)
        assert all(seq.is_filled(i) for i in range(len(seq)))
        assert _positions(fake_provider) == [1, 2, 3, 4]
        assert fake_provider.fact_calls[3][1] == ["Fact 1", "Fact 2", "Fact 3"]

    @pytest.mark.asyncio
    async def test_ensure_returns_once_its_slot_is_stored(self, provider_cls, make_settings) -> None:
        provider = provider_cls(delay=0.2)
        seq, preloader = _build(BatchPreloader, provider, make_settings(preload_batch_size=2, generate_images=False))
        preloader.schedule_ahead(0)
        await preloader.ensure(0)
        assert seq.is_filled(0)
        assert not seq.is_filled(1)
        assert preloader.in_flight
        await preloader.ensure(2)
        assert [seq.is_filled(i) for i in range(3)] == [True, True, True]
        assert _positions(provider) == [1, 2]

    @pytest.mark.asyncio
    async def test_failed_batch_clears_cache(self, provider_cls, make_settings) -> None:
        provider = provider_cls(fail_once={2})
        seq, preloader = _build(BatchPreloader, provider, make_settings(preload_batch_size=2))
        await preloader.prepare()
        assert preloader.status is PreloadStatus.DONE
        assert not any(seq.is_filled(i) for i in range(len(seq)))
        await preloader.ensure(0)
        assert seq.is_filled(0)
        assert _positions(provider) == [1, 2, 1]


class TestLevel:

    @pytest.mark.asyncio
    async def test_whole_level_with_progress(self, fake_provider, make_settings) -> None:
        seq, preloader = _build(LevelPreloader, fake_provider, make_settings())
        seen = []
        await preloader.prepare(progress=seen.append)
        assert preloader.status is PreloadStatus.DONE
        assert all(seq.is_filled(i) for i in range(len(seq)))
        assert fake_provider.fact_calls == [
            (1, [], 2),
            (2, ["Fact 1"], 2),
            (3, ["Fact 1", "Fact 2"], 2),
            (4, ["Fact 1", "Fact 2", "Fact 3"], 2),
        ]
        assert len(fake_provider.image_calls) == 4
        assert fake_provider.quiz_calls == [["Fact 1", "Fact 2"], ["Fact 3", "Fact 4"]]
        assert seen[-1].completed == seen[-1].total == 10
        assert [p.completed for p in seen] == sorted(p.completed for p in seen)
        stages = [p.stage for p in seen]
        assert stages.index("Rendering illustrations") > stages.index("Charting cosmic facts")
        assert stages.index("Composing quizzes") > stages.index("Rendering illustrations")

    @pytest.mark.asyncio
    async def test_prepare_twice_is_a_no_op(self, fake_provider, make_settings) -> None:
        seq, preloader = _build(LevelPreloader, fake_provider, make_settings())
        await preloader.prepare()
        await preloader.prepare()
        assert len(fake_provider.fact_calls) == 4

    @pytest.mark.asyncio
    async def test_failure_is_terminal(self, provider_cls, make_settings) -> None:
        provider = provider_cls(fail_always={3})
        seq, preloader = _build(LevelPreloader, provider, make_settings())
        with pytest.raises(PreloadFailed):
            await preloader.prepare()
        assert preloader.status is PreloadStatus.FAILED
        assert not any(seq.is_filled(i) for i in range(len(seq)))
        with pytest.raises(PreloadFailed):
            await preloader.ensure(0)
        assert _positions(provider) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_image_failures_do_not_fail_the_level(self, provider_cls, make_settings) -> None:
        provider = provider_cls(fail_images=True)
        seq, preloader = _build(LevelPreloader, provider, make_settings())
        await preloader.prepare()
        assert preloader.status is PreloadStatus.DONE
        assert seq.slots[0].fact.image_url is None

    @pytest.mark.asyncio
    async def test_close_cancels_level(self, provider_cls, make_settings) -> None:
        gate = threading.Event()
        provider = provider_cls(gate=gate)
        seq, preloader = _build(LevelPreloader, provider, make_settings())
        task = asyncio.create_task(preloader.prepare())
        await asyncio.sleep(0.01)
        assert preloader.in_flight
        preloader.close()
        gate.set()
        with pytest.raises(PreloadFailed):
            await task
        assert not any(seq.is_filled(i) for i in range(len(seq)))
