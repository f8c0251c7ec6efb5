import uuid
from typing import List, Optional
from ..models import ChatMessage, MessageSender, QuizQuestion

def _message_id(prefix: str) -> str:
	return f"{prefix}-{uuid.uuid4().hex[:12]}"

class ChatLog:
	"""Ordered transcript shown to the player."""

	def __init__(self, greeting: Optional[str] = None) -> None:
		self.messages: List[ChatMessage] = []
		if greeting:
			self.add_ai(greeting, prefix="ai-start")

	def add_user(self, text: str) -> ChatMessage:
		return self._append(ChatMessage(id=_message_id("user"), sender=MessageSender.USER, text=text))

	def add_ai(self, text: str, image_url: Optional[str] = None, prefix: str = "ai") -> ChatMessage:
		return self._append(ChatMessage(id=_message_id(prefix), sender=MessageSender.AI, text=text, image_url=image_url))

	def add_loading(self) -> ChatMessage:
		return self._append(ChatMessage(id=_message_id("loading"), sender=MessageSender.AI, is_loading=True))

	def resolve(self, placeholder: ChatMessage, *, text: Optional[str] = None, image_url: Optional[str] = None, quiz: Optional[List[QuizQuestion]] = None, prefix: str = "ai") -> ChatMessage:
		self._drop(placeholder)
		return self._append(ChatMessage(id=_message_id(prefix), sender=MessageSender.AI, text=text, image_url=image_url, quiz=quiz))

	def fail(self, placeholder: ChatMessage, text: str) -> ChatMessage:
		self._drop(placeholder)
		return self.add_ai(text, prefix="ai-error")

	def clear(self, greeting: Optional[str] = None) -> None:
		self.messages = []
		if greeting:
			self.add_ai(greeting, prefix="ai-start")

	def _drop(self, placeholder: ChatMessage) -> None:
		self.messages = [m for m in self.messages if m.id != placeholder.id]

	def _append(self, message: ChatMessage) -> ChatMessage:
		self.messages.append(message)
		return message

	def __len__(self) -> int:
		return len(self.messages)
