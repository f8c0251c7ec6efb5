"""Player actions.

``CosmoQuestGame`` wires the state machine, the sequencer, the preloader and
the chat transcript together over an explicit ``SessionData``. Actions that
need content validate the transition first, fetch, and only then commit the
new state, so a failed fetch leaves the session where it was.
"""
import asyncio
import logging
from contextlib import contextmanager
from typing import List, Optional
from ..config import Settings, settings as default_settings
from ..errors import ContentProviderError, InvalidTransition, PreloadFailed, SessionBusy
from ..models import Controls, Difficulty, FactBlock, GameState, PreloadProgress, PreloadStatus, QuizResult, SessionView
from ..persona import (
	FACT_ERROR_MESSAGE,
	GAME_OVER_MESSAGE,
	IDLE_HINT,
	PRELOAD_ERROR_MESSAGE,
	QUIZ_ERROR_MESSAGE,
	TERMINATION_PHRASE,
	fact_text,
	level_complete_message,
	welcome_message,
)
from ..state import SessionData, SessionStore, session_store
from . import game_machine as events
from .preloader import ContentProvider, PreloadPolicy, make_preloader
from .quiz_scoring import score_quiz
from .sequencer import BlockKind, ContentSequencer

logger = logging.getLogger("cosmoquest")

ACTIVE_STATES = (GameState.WELCOME, GameState.PLAYING, GameState.QUIZ, GameState.QUIZ_DONE)

class CosmoQuestGame:
	def __init__(self, provider: ContentProvider, store: Optional[SessionStore] = None, config: Optional[Settings] = None) -> None:
		self.provider = provider
		self.store = store if store is not None else session_store
		self.settings = config or default_settings

	def create_session(self) -> str:
		session = self.store.create_session()
		logger.debug({"event": "session_started", "session_id": session.session_id})
		return session.session_id

	def view(self, session_id: str) -> SessionView:
		session = self.store.get(session_id)
		preloader = session.preloader
		return SessionView(
			session_id=session.session_id,
			state=session.machine.state,
			difficulty=session.difficulty,
			facts_shown=session.sequencer.facts_shown if session.sequencer else 0,
			total_facts=self.settings.facts_per_level,
			busy=session.busy,
			preload_status=preloader.status if preloader else PreloadStatus.IDLE,
			preload_progress=preloader.progress if preloader else None,
			controls=self.controls(session),
			messages=list(session.chat.messages),
			last_quiz_result=session.last_quiz_result,
		)

	def controls(self, session: SessionData) -> Controls:
		state = session.machine.state
		if session.busy:
			return Controls()
		next_kind = session.sequencer.next_kind() if session.sequencer else None
		return Controls(
			start=state is GameState.WELCOME and not self._preload_pending(session),
			next_fact=state is GameState.PLAYING and next_kind is BlockKind.FACT,
			take_quiz=state is GameState.PLAYING and next_kind is BlockKind.QUIZ,
			continue_lesson=state is GameState.QUIZ_DONE,
			end_session=state in ACTIVE_STATES,
			return_to_menu=state in (GameState.LEVEL_COMPLETE, GameState.ERROR),
		)

	async def select_difficulty(self, session_id: str, difficulty: Difficulty) -> SessionView:
		session = self.store.get(session_id)
		self._ensure_idle(session)
		session.machine.fire(events.SELECT_DIFFICULTY)
		if session.preloader is not None:
			session.preloader.close()
		session.difficulty = difficulty
		session.sequencer = ContentSequencer(self.settings.facts_per_level, self.settings.quiz_interval)
		session.preloader = make_preloader(self.settings.preload_policy, self.provider, session.sequencer, difficulty, self.settings)
		session.chat.add_ai(welcome_message(difficulty, self.settings.quiz_interval), prefix="ai-welcome")
		logger.debug({"event": "difficulty_selected", "session_id": session_id, "difficulty": int(difficulty), "policy": self.settings.preload_policy})
		return self.view(session_id)

	async def run_preload(self, session_id: str) -> None:
		"""Background preload kicked off by a difficulty selection."""
		session = self.store.sessions.get(session_id)
		if session is None or session.preloader is None:
			return
		preloader = session.preloader

		def report(progress: PreloadProgress) -> None:
			logger.debug({"event": "preload_progress", "session_id": session_id, "completed": progress.completed, "total": progress.total, "stage": progress.stage})

		try:
			await preloader.prepare(progress=report)
		except PreloadFailed:
			if preloader.closed or session.preloader is not preloader:
				logger.debug({"event": "stale_preload_ignored", "session_id": session_id})
				return
			logger.warning({"event": "preload_failed", "session_id": session_id})
			if session.machine.can(events.PRELOAD_FAILED):
				session.machine.fire(events.PRELOAD_FAILED)
				session.chat.add_ai(PRELOAD_ERROR_MESSAGE, prefix="ai-error")
			return
		logger.debug({"event": "preload_finished", "session_id": session_id, "status": preloader.status.value})

	async def start_lesson(self, session_id: str) -> SessionView:
		session = self.store.get(session_id)
		self._ensure_idle(session)
		session.machine.resolve(events.START)
		if self._preload_pending(session):
			raise SessionBusy("mission materials are still being prepared")
		await self._present_next(session, events.START)
		return self.view(session_id)

	async def next_fact(self, session_id: str) -> SessionView:
		session = self.store.get(session_id)
		self._ensure_idle(session)
		context = {"next_is_quiz": self._next_is_quiz(session)}
		session.machine.resolve(events.NEXT_FACT, **context)
		await self._present_next(session, events.NEXT_FACT, **context)
		return self.view(session_id)

	async def take_quiz(self, session_id: str) -> SessionView:
		session = self.store.get(session_id)
		self._ensure_idle(session)
		context = {"next_is_quiz": self._next_is_quiz(session)}
		session.machine.resolve(events.TAKE_QUIZ, **context)
		await self._present_next(session, events.TAKE_QUIZ, **context)
		return self.view(session_id)

	async def submit_quiz(self, session_id: str, answers: List[Optional[str]]) -> QuizResult:
		session = self.store.get(session_id)
		self._ensure_idle(session)
		session.machine.resolve(events.SUBMIT_QUIZ)
		result = score_quiz(session.current_quiz, answers)
		session.machine.fire(events.SUBMIT_QUIZ)
		session.last_quiz_result = result
		session.chat.add_ai(result.message, prefix="ai-quiz-result")
		logger.debug({"event": "quiz_submitted", "session_id": session_id, "score": result.score, "total": result.total})
		return result

	async def continue_lesson(self, session_id: str) -> SessionView:
		session = self.store.get(session_id)
		self._ensure_idle(session)
		facts_shown = session.sequencer.facts_shown if session.sequencer else 0
		context = {"facts_shown": facts_shown, "facts_per_level": self.settings.facts_per_level}
		target = session.machine.resolve(events.CONTINUE, **context)
		if target is GameState.LEVEL_COMPLETE:
			session.machine.fire(events.CONTINUE, **context)
			session.chat.add_ai(level_complete_message(session.difficulty, self.settings.facts_per_level), prefix="ai-level-complete")
			logger.debug({"event": "level_complete", "session_id": session_id, "difficulty": int(session.difficulty)})
		else:
			await self._present_next(session, events.CONTINUE, **context)
		return self.view(session_id)

	async def end_session(self, session_id: str) -> SessionView:
		session = self.store.get(session_id)
		self._ensure_idle(session)
		session.machine.fire(events.END_SESSION)
		if session.preloader is not None:
			session.preloader.close()
		session.chat.add_ai(GAME_OVER_MESSAGE, prefix="ai-gameover")
		if session.reset_task is not None and not session.reset_task.done():
			session.reset_task.cancel()
		session.reset_task = asyncio.create_task(self._reset_later(session_id, self.settings.session_reset_delay_seconds))
		logger.debug({"event": "session_ended", "session_id": session_id})
		return self.view(session_id)

	def reset_session(self, session_id: str) -> None:
		session = self.store.get(session_id)
		if session.machine.state is not GameState.SESSION_OVER:
			return
		session.machine.fire(events.RESET)
		session.clear()
		logger.debug({"event": "session_reset", "session_id": session_id})

	async def send_message(self, session_id: str, text: str) -> SessionView:
		session = self.store.get(session_id)
		self._ensure_idle(session)
		session.chat.add_user(text)
		if text.strip().lower() == TERMINATION_PHRASE.lower():
			if session.machine.state is GameState.SESSION_OVER:
				return self.view(session_id)
			return await self.end_session(session_id)
		controls = self.controls(session)
		if controls.start:
			return await self.start_lesson(session_id)
		if controls.next_fact:
			return await self.next_fact(session_id)
		if controls.take_quiz:
			return await self.take_quiz(session_id)
		if controls.continue_lesson:
			return await self.continue_lesson(session_id)
		session.chat.add_ai(IDLE_HINT, prefix="ai-hint")
		return self.view(session_id)

	async def _reset_later(self, session_id: str, delay: float) -> None:
		await asyncio.sleep(delay)
		if self.store.has_session(session_id):
			self.reset_session(session_id)

	@contextmanager
	def _busy(self, session: SessionData):
		self._ensure_idle(session)
		session.busy = True
		try:
			yield
		finally:
			session.busy = False

	def _ensure_idle(self, session: SessionData) -> None:
		if session.busy:
			raise SessionBusy("a request for this session is still in flight")

	def _next_is_quiz(self, session: SessionData) -> bool:
		return session.sequencer is not None and session.sequencer.next_kind() is BlockKind.QUIZ

	def _preload_pending(self, session: SessionData) -> bool:
		preloader = session.preloader
		return preloader is not None and preloader.policy is PreloadPolicy.LEVEL and preloader.status is PreloadStatus.LOADING

	async def _present_next(self, session: SessionData, event: str, **context) -> None:
		if session.sequencer is None or session.preloader is None:
			raise InvalidTransition(session.machine.state.value, event)
		with self._busy(session):
			index = session.sequencer.cursor
			kind = session.sequencer.plan[index]
			placeholder = session.chat.add_loading()
			try:
				await session.preloader.ensure(index)
			except PreloadFailed:
				logger.warning({"event": "level_content_missing", "session_id": session.session_id, "index": index})
				session.chat.fail(placeholder, PRELOAD_ERROR_MESSAGE)
				session.machine.fire(events.PRELOAD_FAILED)
				return
			except ContentProviderError:
				logger.warning({"event": "content_fetch_failed", "session_id": session.session_id, "index": index, "kind": kind.value})
				session.chat.fail(placeholder, FACT_ERROR_MESSAGE if kind is BlockKind.FACT else QUIZ_ERROR_MESSAGE)
				return
			block = session.sequencer.advance()
			session.machine.fire(event, **context)
			if isinstance(block, FactBlock):
				fact = block.fact
				session.chat.resolve(placeholder, text=fact_text(fact.position, fact.fact, fact.explanation), image_url=fact.image_url, prefix="ai-fact")
				logger.debug({"event": "serve_fact", "session_id": session.session_id, "position": fact.position, "fact": fact.fact})
			else:
				session.current_quiz = list(block.questions)
				session.chat.resolve(placeholder, quiz=session.current_quiz, prefix="ai-quiz")
				logger.debug({"event": "serve_quiz", "session_id": session.session_id, "questions": len(block.questions)})
			session.preloader.schedule_ahead(session.sequencer.cursor)
