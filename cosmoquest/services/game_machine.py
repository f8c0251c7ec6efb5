from typing import Dict, Optional, Tuple
from ..errors import InvalidTransition
from ..models import GameState

SELECT_DIFFICULTY = "select_difficulty"
START = "start"
NEXT_FACT = "next_fact"
TAKE_QUIZ = "take_quiz"
SUBMIT_QUIZ = "submit_quiz"
CONTINUE = "continue"
PRELOAD_FAILED = "preload_failed"
END_SESSION = "end_session"
RESET = "reset"

TRANSITIONS: Dict[Tuple[GameState, str], GameState] = {
	(GameState.SELECTING, SELECT_DIFFICULTY): GameState.WELCOME,
	(GameState.WELCOME, START): GameState.PLAYING,
	(GameState.PLAYING, NEXT_FACT): GameState.PLAYING,
	(GameState.PLAYING, TAKE_QUIZ): GameState.QUIZ,
	(GameState.QUIZ, SUBMIT_QUIZ): GameState.QUIZ_DONE,
	(GameState.QUIZ_DONE, CONTINUE): GameState.PLAYING,
	(GameState.SELECTING, PRELOAD_FAILED): GameState.ERROR,
	(GameState.WELCOME, PRELOAD_FAILED): GameState.ERROR,
	(GameState.PLAYING, PRELOAD_FAILED): GameState.ERROR,
	(GameState.QUIZ_DONE, PRELOAD_FAILED): GameState.ERROR,
	(GameState.SESSION_OVER, RESET): GameState.SELECTING,
}

class GameMachine:
	def __init__(self) -> None:
		self.state = GameState.SELECTING

	def resolve(self, event: str, *, facts_shown: int = 0, facts_per_level: int = 0, next_is_quiz: Optional[bool] = None) -> GameState:
		"""Target state for ``event`` without committing it."""
		if event == END_SESSION:
			return GameState.SESSION_OVER
		target = TRANSITIONS.get((self.state, event))
		if target is None:
			raise InvalidTransition(self.state.value, event)
		if event == NEXT_FACT and next_is_quiz:
			raise InvalidTransition(self.state.value, event)
		if event == TAKE_QUIZ and not next_is_quiz:
			raise InvalidTransition(self.state.value, event)
		if event == CONTINUE and facts_shown >= facts_per_level:
			return GameState.LEVEL_COMPLETE
		return target

	def fire(self, event: str, **context) -> GameState:
		self.state = self.resolve(event, **context)
		return self.state

	def can(self, event: str, **context) -> bool:
		try:
			self.resolve(event, **context)
		except InvalidTransition:
			return False
		return True
