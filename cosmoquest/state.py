import asyncio
import uuid
from typing import Dict, List, Optional
from .errors import SessionNotFound
from .models import Difficulty, QuizQuestion, QuizResult
from .persona import SELECTOR_GREETING
from .services.chat import ChatLog
from .services.game_machine import GameMachine
from .services.preloader import Preloader
from .services.sequencer import ContentSequencer

class SessionData:
	def __init__(self, session_id: str) -> None:
		self.session_id = session_id
		self.difficulty: Optional[Difficulty] = None
		self.machine = GameMachine()
		self.sequencer: Optional[ContentSequencer] = None
		self.preloader: Optional[Preloader] = None
		self.chat = ChatLog(SELECTOR_GREETING)
		self.busy = False
		self.current_quiz: List[QuizQuestion] = []
		self.last_quiz_result: Optional[QuizResult] = None
		self.reset_task: Optional[asyncio.Task] = None

	def clear(self) -> None:
		"""Back to the difficulty selector with an empty transcript."""
		if self.preloader is not None:
			self.preloader.close()
		self.difficulty = None
		self.sequencer = None
		self.preloader = None
		self.chat.clear(SELECTOR_GREETING)
		self.busy = False
		self.current_quiz = []
		self.last_quiz_result = None

class SessionStore:
	def __init__(self) -> None:
		self.sessions: Dict[str, SessionData] = {}

	def create_session(self, session_id: Optional[str] = None) -> SessionData:
		session_id = session_id or str(uuid.uuid4())
		self.sessions[session_id] = SessionData(session_id)
		return self.sessions[session_id]

	def has_session(self, session_id: str) -> bool:
		return session_id in self.sessions

	def get(self, session_id: str) -> SessionData:
		session = self.sessions.get(session_id)
		if session is None:
			raise SessionNotFound(session_id)
		return session

session_store = SessionStore()
