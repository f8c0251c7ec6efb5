"""Content preloading policies.

Every preloader is bound to one level (a ``ContentSequencer``), one
difficulty tier and one content provider, and fills the sequencer's slots
ahead of the player:

* ``on_demand``  - nothing ahead; each block is fetched when asked for.
* ``lookahead``  - the next block is fetched while the current one is shown.
* ``batch``      - a run of ``preload_batch_size`` facts (and any quiz inside
  the run) is fetched whenever the previous run has been used up.
* ``level``      - the whole level is fetched before play starts: facts one
  by one, then every image in parallel, then every quiz.

Provider calls block, so they run in worker threads. A failed prefetch is
abandoned and its unconsumed slots cleared; incremental policies then fall
back to fetching on demand, the whole-level policy fails for good.
"""
import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol
from ..config import Settings
from ..errors import ContentProviderError, PreloadFailed
from ..models import Difficulty, Fact, FactBlock, FactDraft, PreloadProgress, PreloadStatus, QuizBlock, QuizQuestion
from .sequencer import BlockKind, ContentSequencer

logger = logging.getLogger("cosmoquest")

ProgressCallback = Callable[[PreloadProgress], None]

class ContentProvider(Protocol):
    def generate_fact(self, position: int, known_facts: List[str], difficulty: int) -> FactDraft: ...
    def generate_image(self, prompt: str) -> str: ...
    def generate_quiz(self, facts: List[str], difficulty: int) -> List[QuizQuestion]: ...

class PreloadPolicy(str, Enum):
    ON_DEMAND = "on_demand"
    LOOKAHEAD = "lookahead"
    BATCH = "batch"
    LEVEL = "level"

class Preloader:
    policy = PreloadPolicy.ON_DEMAND

    def __init__(self, provider: ContentProvider, sequencer: ContentSequencer, difficulty: Difficulty, config: Settings) -> None:
        self.provider = provider
        self.sequencer = sequencer
        self.difficulty = difficulty
        self.settings = config
        self.status = PreloadStatus.IDLE
        self.progress: Optional[PreloadProgress] = None
        self.closed = False
        self._pending: Dict[int, asyncio.Task] = {}
        self._slot_events: Dict[int, asyncio.Event] = {}

    async def prepare(self, progress: Optional[ProgressCallback] = None) -> None:
        """Prefetch the first block(s); incremental policies never fail here.

        A failed first prefetch still ends in ``done``: the blocks are then
        fetched on demand as the player asks for them.
        """
        if self.status is not PreloadStatus.IDLE:
            return
        self.status = PreloadStatus.LOADING
        self.schedule_ahead(self.sequencer.cursor)
        pending = set(self._pending.values())
        if pending:
            await asyncio.wait(pending)
        if not self.sequencer.is_filled(self.sequencer.cursor):
            logger.warning({"event": "prefetch_fallback_to_on_demand", "policy": self.policy.value, "index": self.sequencer.cursor})
        self.status = PreloadStatus.DONE

    def schedule_ahead(self, cursor: int) -> None:
        pass

    async def ensure(self, index: int) -> None:
        if self.sequencer.is_filled(index):
            return
        task = self._pending.get(index)
        if task is not None:
            await self._wait_for_slot(index, task)
            if self.sequencer.is_filled(index):
                logger.debug({"event": "prefetch_hit", "policy": self.policy.value, "index": index})
                return
            if task.done() and not task.cancelled():
                exc = task.exception()
                if exc is not None and not isinstance(exc, ContentProviderError):
                    raise exc
            logger.debug({"event": "prefetch_fallback", "policy": self.policy.value, "index": index})
        block = await self._fetch(index)
        self._store(index, block)

    async def _wait_for_slot(self, index: int, task: asyncio.Task) -> None:
        """Return once slot ``index`` is stored or ``task`` has finished."""
        event = self._slot_events.setdefault(index, asyncio.Event())
        filled = asyncio.ensure_future(event.wait())
        try:
            await asyncio.wait({task, filled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            filled.cancel()

    def close(self) -> None:
        self.closed = True
        for task in set(self._pending.values()):
            task.cancel()
        self._pending.clear()

    @property
    def in_flight(self) -> bool:
        return any(not t.done() for t in self._pending.values())

    async def _fetch(self, index: int):
        if self.sequencer.plan[index] is BlockKind.FACT:
            return await self._fetch_fact(index)
        return await self._fetch_quiz(index)

    async def _fetch_fact(self, index: int) -> FactBlock:
        position = self.sequencer.fact_position(index)
        known = self.sequencer.known_facts(index)
        draft = await asyncio.to_thread(self.provider.generate_fact, position, known, int(self.difficulty))
        image_url = await self._render_image(draft.image_prompt)
        return FactBlock(fact=self._make_fact(position, draft, image_url))

    async def _fetch_quiz(self, index: int) -> QuizBlock:
        facts = [f.fact for f in self.sequencer.facts_for_quiz(index)]
        questions = await asyncio.to_thread(self.provider.generate_quiz, facts, int(self.difficulty))
        return QuizBlock(questions=questions)

    async def _render_image(self, prompt: str) -> Optional[str]:
        if not self.settings.generate_images:
            return None
        try:
            return await asyncio.to_thread(self.provider.generate_image, prompt)
        except ContentProviderError:
            logger.warning({"event": "image_skipped", "policy": self.policy.value, "prompt": prompt[:80]})
            return None

    def _make_fact(self, position: int, draft: FactDraft, image_url: Optional[str]) -> Fact:
        return Fact(position=position, fact=draft.fact, explanation=draft.explanation, image_prompt=draft.image_prompt, image_url=image_url)

    def _store(self, index: int, block) -> None:
        if self.closed:
            logger.debug({"event": "stale_content_discarded", "policy": self.policy.value, "index": index})
            return
        self.sequencer.fill(index, block)
        event = self._slot_events.pop(index, None)
        if event is not None:
            event.set()

    async def _fetch_range(self, indices: List[int]) -> None:
        for index in indices:
            if self.sequencer.is_filled(index):
                continue
            block = await self._fetch(index)
            self._store(index, block)

    def _start(self, indices: List[int]) -> asyncio.Task:
        task = asyncio.create_task(self._fetch_range(indices))
        for index in indices:
            self._pending[index] = task

        def _done(t: asyncio.Task) -> None:
            for index in indices:
                if self._pending.get(index) is t:
                    del self._pending[index]
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.warning({"event": "prefetch_abandoned", "policy": self.policy.value, "indices": indices, "error": str(exc)})
                self._abandon(indices[0])

        task.add_done_callback(_done)
        logger.debug({"event": "prefetch_started", "policy": self.policy.value, "indices": indices})
        return task

    def _abandon(self, index: int) -> None:
        for task in set(self._pending.values()):
            task.cancel()
        self._pending.clear()
        self.sequencer.clear_from(index)

    def _covered(self, index: int) -> bool:
        return self.sequencer.is_filled(index) or index in self._pending

class OnDemandPreloader(Preloader):
    policy = PreloadPolicy.ON_DEMAND

    async def prepare(self, progress: Optional[ProgressCallback] = None) -> None:
        self.status = PreloadStatus.DONE

class LookaheadPreloader(Preloader):
    policy = PreloadPolicy.LOOKAHEAD

    def schedule_ahead(self, cursor: int) -> None:
        if self.closed or cursor >= len(self.sequencer) or self._covered(cursor):
            return
        self._start([cursor])

class BatchPreloader(Preloader):
    policy = PreloadPolicy.BATCH

    def schedule_ahead(self, cursor: int) -> None:
        if self.closed or cursor >= len(self.sequencer):
            return
        if any(self._covered(i) for i in range(cursor, len(self.sequencer))):
            return
        self._start(self._batch_from(cursor))

    def _batch_from(self, cursor: int) -> List[int]:
        indices: List[int] = []
        facts = 0
        for index in range(cursor, len(self.sequencer)):
            kind = self.sequencer.plan[index]
            if kind is BlockKind.FACT:
                if facts == self.settings.preload_batch_size:
                    break
                facts += 1
            indices.append(index)
        return indices

class LevelPreloader(Preloader):
    policy = PreloadPolicy.LEVEL

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._level_task: Optional[asyncio.Task] = None
        self._progress_cb: Optional[ProgressCallback] = None

    async def prepare(self, progress: Optional[ProgressCallback] = None) -> None:
        if self.status is PreloadStatus.DONE:
            return
        if self.status is PreloadStatus.FAILED:
            raise PreloadFailed("the level could not be prepared")
        if self._level_task is None:
            self._progress_cb = progress
            self.status = PreloadStatus.LOADING
            self._level_task = asyncio.create_task(self._load_level())
        await asyncio.wait({self._level_task})
        if self._level_task.cancelled():
            self.status = PreloadStatus.FAILED
            raise PreloadFailed("preload cancelled")
        exc = self._level_task.exception()
        if exc is not None:
            self.status = PreloadStatus.FAILED
            raise PreloadFailed(str(exc)) from exc

    async def ensure(self, index: int) -> None:
        if self.sequencer.is_filled(index):
            return
        if self.status is not PreloadStatus.FAILED:
            await self.prepare()
        if not self.sequencer.is_filled(index):
            raise PreloadFailed(f"slot {index} missing after level preload")

    def close(self) -> None:
        super().close()
        if self._level_task is not None and not self._level_task.done():
            self._level_task.cancel()

    @property
    def in_flight(self) -> bool:
        return self._level_task is not None and not self._level_task.done()

    def _report(self, completed: int, total: int, stage: str) -> None:
        self.progress = PreloadProgress(completed=completed, total=total, stage=stage)
        if self._progress_cb is not None:
            self._progress_cb(self.progress)

    async def _load_level(self) -> None:
        plan = self.sequencer.plan
        fact_slots = [i for i, k in enumerate(plan) if k is BlockKind.FACT]
        quiz_slots = [i for i, k in enumerate(plan) if k is BlockKind.QUIZ]
        total = len(fact_slots) * 2 + len(quiz_slots)
        done = 0
        try:
            self._report(done, total, "Charting cosmic facts")
            drafts: List[FactDraft] = []
            for position, _ in enumerate(fact_slots, start=1):
                known = [d.fact for d in drafts]
                drafts.append(await asyncio.to_thread(self.provider.generate_fact, position, known, int(self.difficulty)))
                done += 1
                self._report(done, total, "Charting cosmic facts")

            async def render(draft: FactDraft) -> Optional[str]:
                nonlocal done
                url = await self._render_image(draft.image_prompt)
                done += 1
                self._report(done, total, "Rendering illustrations")
                return url

            self._report(done, total, "Rendering illustrations")
            urls = await asyncio.gather(*(render(d) for d in drafts))
            for position, (index, draft, url) in enumerate(zip(fact_slots, drafts, urls), start=1):
                self._store(index, FactBlock(fact=self._make_fact(position, draft, url)))

            self._report(done, total, "Composing quizzes")
            for index in quiz_slots:
                self._store(index, await self._fetch_quiz(index))
                done += 1
                self._report(done, total, "Composing quizzes")
        except ContentProviderError:
            self.status = PreloadStatus.FAILED
            self.sequencer.clear_from(0)
            logger.exception("level_preload_failed")
            raise
        self.status = PreloadStatus.DONE
        self._report(total, total, "Ready for launch")
        logger.debug({"event": "level_preload_done", "difficulty": int(self.difficulty), "blocks": len(plan)})

PRELOADERS = {
    PreloadPolicy.ON_DEMAND: OnDemandPreloader,
    PreloadPolicy.LOOKAHEAD: LookaheadPreloader,
    PreloadPolicy.BATCH: BatchPreloader,
    PreloadPolicy.LEVEL: LevelPreloader,
}

def make_preloader(policy: str, provider: ContentProvider, sequencer: ContentSequencer, difficulty: Difficulty, config: Settings) -> Preloader:
    return PRELOADERS[PreloadPolicy(policy)](provider, sequencer, difficulty, config)
