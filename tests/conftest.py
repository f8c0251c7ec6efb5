"""Shared fixtures for the CosmoQuest test suite."""

from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional, Set, Tuple

import pytest

from cosmoquest.config import Settings
from cosmoquest.errors import ContentProviderError
from cosmoquest.models import FactDraft, QuizQuestion
from cosmoquest.services.game import CosmoQuestGame
from cosmoquest.state import SessionStore


class FakeProvider:
    """Scripted stand-in for the Gemini content provider.

    Facts are ``"Fact <position>"``; each quiz question's correct answer is
    the first option ``"<fact> A"``.
    """

    def __init__(
        self,
        fail_once: Optional[Set[int]] = None,
        fail_always: Optional[Set[int]] = None,
        fail_images: bool = False,
        fail_quiz_once: bool = False,
        gate: Optional[threading.Event] = None,
        delay: float = 0.0,
    ) -> None:
        self.fail_once = set(fail_once or ())
        self.fail_always = set(fail_always or ())
        self.fail_images = fail_images
        self.fail_quiz_once = fail_quiz_once
        self.gate = gate
        self.delay = delay
        self.fact_calls: List[Tuple[int, List[str], int]] = []
        self.image_calls: List[str] = []
        self.quiz_calls: List[List[str]] = []

    def generate_fact(self, position: int, known_facts: List[str], difficulty: int) -> FactDraft:
        if self.gate is not None:
            self.gate.wait(timeout=5)
        time.sleep(self.delay)
        self.fact_calls.append((position, list(known_facts), difficulty))
        if position in self.fail_always:
            raise ContentProviderError("fact failed")
        if position in self.fail_once:
            self.fail_once.discard(position)
            raise ContentProviderError("fact failed once")
        return FactDraft(
            fact=f"Fact {position}",
            explanation=f"Explanation {position}",
            image_prompt=f"Illustration {position}",
        )

    def generate_image(self, prompt: str) -> str:
        self.image_calls.append(prompt)
        if self.fail_images:
            raise ContentProviderError("image failed")
        return f"data:image/jpeg;base64,{prompt.replace(' ', '')}"

    def generate_quiz(self, facts: List[str], difficulty: int) -> List[QuizQuestion]:
        time.sleep(self.delay)
        self.quiz_calls.append(list(facts))
        if self.fail_quiz_once:
            self.fail_quiz_once = False
            raise ContentProviderError("quiz failed once")
        return [
            QuizQuestion(
                question=f"What about {fact}?",
                options=[f"{fact} A", f"{fact} B", f"{fact} C", f"{fact} D"],
                correct_answer=f"{fact} A",
            )
            for fact in facts
        ]


@pytest.fixture
def provider_cls() -> type:
    return FakeProvider


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Small levels (4 facts, quiz every 2) with on-demand loading by default."""

    def _make(**overrides) -> Settings:
        values = dict(
            gemini_api_key=None,
            generate_images=True,
            quiz_interval=2,
            facts_per_level=4,
            preload_policy="on_demand",
            preload_batch_size=2,
            session_reset_delay_seconds=0.0,
        )
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def make_game(fake_provider, make_settings) -> Callable[..., CosmoQuestGame]:
    def _make(provider=None, **overrides) -> CosmoQuestGame:
        return CosmoQuestGame(
            provider=provider if provider is not None else fake_provider,
            store=SessionStore(),
            config=make_settings(**overrides),
        )

    return _make


def answers_for(questions: List[QuizQuestion], wrong: Tuple[int, ...] = ()) -> List[str]:
    """Correct answers, except at the ``wrong`` positions."""
    return [q.options[1] if i in wrong else q.correct_answer for i, q in enumerate(questions)]


@pytest.fixture
def quiz_answers() -> Callable[..., List[str]]:
    return answers_for
