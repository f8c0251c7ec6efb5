from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Literal, Optional, Union

class Difficulty(int, Enum):
    FOUNDATIONS = 1
    STELLAR_SYSTEMS = 2
    COSMIC_FRONTIERS = 3

class GameState(str, Enum):
    SELECTING = "selecting"
    WELCOME = "welcome"
    PLAYING = "playing"
    QUIZ = "quiz"
    QUIZ_DONE = "quiz_done"
    LEVEL_COMPLETE = "level_complete"
    SESSION_OVER = "session_over"
    ERROR = "error"

class MessageSender(str, Enum):
    USER = "user"
    AI = "ai"
    SYSTEM = "system"

class PreloadStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    DONE = "done"
    FAILED = "failed"

class FactDraft(BaseModel):
    fact: str
    explanation: str
    image_prompt: str

class Fact(BaseModel, frozen=True):
    position: int
    fact: str
    explanation: str
    image_prompt: str
    image_url: Optional[str] = None

class QuizQuestion(BaseModel, frozen=True):
    question: str
    options: List[str]
    correct_answer: str

    @field_validator("options")
    @classmethod
    def _four_options(cls, v: List[str]) -> List[str]:
        if len(v) != 4:
            raise ValueError("a quiz question needs exactly 4 options")
        if len(set(v)) != 4:
            raise ValueError("quiz options must be distinct")
        return v

    @model_validator(mode="after")
    def _answer_is_an_option(self) -> "QuizQuestion":
        if self.correct_answer not in self.options:
            raise ValueError("correct_answer must be one of the options")
        return self

class FactBlock(BaseModel, frozen=True):
    kind: Literal["fact"] = "fact"
    fact: Fact

class QuizBlock(BaseModel, frozen=True):
    kind: Literal["quiz"] = "quiz"
    questions: List[QuizQuestion]

ContentBlock = Union[FactBlock, QuizBlock]

class ChatMessage(BaseModel):
    id: str
    sender: MessageSender
    text: Optional[str] = None
    image_url: Optional[str] = None
    quiz: Optional[List[QuizQuestion]] = None
    is_loading: bool = False

class PreloadProgress(BaseModel):
    completed: int = 0
    total: int = 0
    stage: str = ""

class QuizResult(BaseModel):
    score: int
    total: int
    correct: List[bool]
    correct_answers: List[str]
    message: str

class DifficultyInfo(BaseModel):
    level: Difficulty
    label: str
    description: str

class Controls(BaseModel):
    start: bool = False
    next_fact: bool = False
    take_quiz: bool = False
    continue_lesson: bool = False
    end_session: bool = False
    return_to_menu: bool = False

class SessionView(BaseModel):
    session_id: str
    state: GameState
    difficulty: Optional[Difficulty] = None
    facts_shown: int = 0
    total_facts: int
    busy: bool = False
    preload_status: PreloadStatus = PreloadStatus.IDLE
    preload_progress: Optional[PreloadProgress] = None
    controls: Controls
    messages: List[ChatMessage]
    last_quiz_result: Optional[QuizResult] = None

class StartSessionResponse(BaseModel):
    session_id: str

class SessionRequest(BaseModel):
    session_id: str

class SelectDifficultyRequest(BaseModel):
    session_id: str
    difficulty: Difficulty

class SubmitQuizRequest(BaseModel):
    session_id: str
    answers: List[Optional[str]] = Field(default_factory=list)

class ChatMessageRequest(BaseModel):
    session_id: str
    text: str

class SubmitQuizResponse(BaseModel):
    result: QuizResult
    session: SessionView
