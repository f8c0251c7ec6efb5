class CosmoQuestError(Exception):
	"""Base class for every error the game raises on purpose."""

class ContentProviderError(CosmoQuestError):
	"""The generative model could not produce usable content."""

class PreloadFailed(ContentProviderError):
	"""A whole-level preload failed; the level cannot be played."""

class ContentNotReady(CosmoQuestError):
	"""The sequencer was advanced onto a slot nobody filled."""

class InvalidTransition(CosmoQuestError):
	def __init__(self, state: str, event: str) -> None:
		super().__init__(f"cannot {event} while {state}")
		self.state = state
		self.event = event

class SessionBusy(CosmoQuestError):
	pass

class SessionNotFound(CosmoQuestError):
	pass

class QuizIncomplete(CosmoQuestError):
	pass

class InvalidAnswer(CosmoQuestError):
	pass
