from fastapi import FastAPI, HTTPException, Request, BackgroundTasks
from fastapi.responses import ORJSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging
from time import perf_counter
from typing import List
from .config import settings
from .errors import InvalidAnswer, InvalidTransition, QuizIncomplete, SessionBusy, SessionNotFound
from .models import (
	ChatMessageRequest,
	DifficultyInfo,
	SelectDifficultyRequest,
	SessionRequest,
	SessionView,
	StartSessionResponse,
	SubmitQuizRequest,
	SubmitQuizResponse,
)
from .persona import difficulty_list
from .services.game import CosmoQuestGame
from .services.gemini_client import GeminiContentProvider

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.DEBUG), format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("cosmoquest")

app = FastAPI(title="CosmoQuest", default_response_class=ORJSONResponse)

app.add_middleware(
	CORSMiddleware,
	allow_origins=["*"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

game = CosmoQuestGame(provider=GeminiContentProvider())

@app.on_event("startup")
def on_startup() -> None:
	logger.info({
		"event": "api_startup",
		"model": settings.gemini_model,
		"image_model": settings.gemini_image_model,
		"preload_policy": settings.preload_policy,
		"facts_per_level": settings.facts_per_level,
		"quiz_interval": settings.quiz_interval,
		"api_key_configured": bool(settings.gemini_api_key),
	})

@app.middleware("http")
async def timing_middleware(request: Request, call_next):
	start = perf_counter()
	response = await call_next(request)
	duration_ms = int((perf_counter() - start) * 1000)
	logger.debug({
		"event": "request_timing",
		"method": request.method,
		"path": request.url.path,
		"status_code": response.status_code,
		"duration_ms": duration_ms,
	})
	return response

@app.exception_handler(SessionNotFound)
async def session_not_found_handler(request: Request, exc: SessionNotFound):
	return ORJSONResponse(status_code=404, content={"detail": "session_not_found"})

@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
	logger.debug({"event": "invalid_transition", "state": exc.state, "action": exc.event})
	return ORJSONResponse(status_code=409, content={"detail": "invalid_transition", "state": exc.state, "action": exc.event})

@app.exception_handler(SessionBusy)
async def session_busy_handler(request: Request, exc: SessionBusy):
	return ORJSONResponse(status_code=409, content={"detail": "session_busy", "message": str(exc)})

@app.get("/api/health")
def health():
	return {"status": "ok", "model": settings.gemini_model, "image_model": settings.gemini_image_model}

@app.get("/api/difficulties", response_model=List[DifficultyInfo])
def list_difficulties():
	return difficulty_list()

@app.post("/api/session/start", response_model=StartSessionResponse)
def start_session():
	return StartSessionResponse(session_id=game.create_session())

@app.get("/api/session/state", response_model=SessionView)
def get_session_state(session_id: str):
	return game.view(session_id)

@app.post("/api/session/difficulty", response_model=SessionView)
async def select_difficulty(payload: SelectDifficultyRequest, background_tasks: BackgroundTasks):
	view = await game.select_difficulty(payload.session_id, payload.difficulty)
	background_tasks.add_task(game.run_preload, payload.session_id)
	logger.debug({"event": "preload_queued", "session_id": payload.session_id, "difficulty": int(payload.difficulty)})
	return view

@app.post("/api/lesson/start", response_model=SessionView)
async def start_lesson(payload: SessionRequest):
	return await game.start_lesson(payload.session_id)

@app.post("/api/lesson/next", response_model=SessionView)
async def next_fact(payload: SessionRequest):
	return await game.next_fact(payload.session_id)

@app.post("/api/quiz/take", response_model=SessionView)
async def take_quiz(payload: SessionRequest):
	return await game.take_quiz(payload.session_id)

@app.post("/api/quiz/submit", response_model=SubmitQuizResponse)
async def submit_quiz(payload: SubmitQuizRequest):
	try:
		result = await game.submit_quiz(payload.session_id, payload.answers)
	except QuizIncomplete:
		raise HTTPException(status_code=422, detail="quiz_incomplete")
	except InvalidAnswer:
		raise HTTPException(status_code=422, detail="invalid_answer")
	return SubmitQuizResponse(result=result, session=game.view(payload.session_id))

@app.post("/api/lesson/continue", response_model=SessionView)
async def continue_lesson(payload: SessionRequest):
	return await game.continue_lesson(payload.session_id)

@app.post("/api/session/end", response_model=SessionView)
async def end_session(payload: SessionRequest):
	return await game.end_session(payload.session_id)

@app.post("/api/chat/message", response_model=SessionView)
async def send_message(payload: ChatMessageRequest):
	text = payload.text.strip()
	if not text:
		raise HTTPException(status_code=400, detail="empty_message")
	return await game.send_message(payload.session_id, text)
