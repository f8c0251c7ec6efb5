"""Per-level content sequence.

A level is a fixed plan of block kinds: ``quiz_interval`` facts followed by
one quiz, repeated until ``facts_per_level`` facts are planned. The
sequencer owns one slot per planned block; slots are filled either all at
once (whole-level preload) or one at a time as content arrives, and
``advance`` walks them in order.
"""
from enum import Enum
from typing import List, Optional, Union
from ..errors import ContentNotReady
from ..models import ContentBlock, Fact, FactBlock, QuizBlock

class BlockKind(str, Enum):
    FACT = "fact"
    QUIZ = "quiz"

class _EndOfLevel:
    def __repr__(self) -> str:
        return "END_OF_LEVEL"

END_OF_LEVEL = _EndOfLevel()

def level_plan(facts_per_level: int, quiz_interval: int) -> List[BlockKind]:
    if quiz_interval <= 0 or facts_per_level <= 0 or facts_per_level % quiz_interval:
        raise ValueError("facts_per_level must be a positive multiple of quiz_interval")
    plan: List[BlockKind] = []
    for _ in range(facts_per_level // quiz_interval):
        plan.extend([BlockKind.FACT] * quiz_interval)
        plan.append(BlockKind.QUIZ)
    return plan

class ContentSequencer:
    def __init__(self, facts_per_level: int, quiz_interval: int) -> None:
        self.facts_per_level = facts_per_level
        self.quiz_interval = quiz_interval
        self.plan = level_plan(facts_per_level, quiz_interval)
        self.slots: List[Optional[ContentBlock]] = [None] * len(self.plan)
        self.cursor = 0
        self.facts_shown = 0

    def __len__(self) -> int:
        return len(self.plan)

    def next_kind(self) -> Optional[BlockKind]:
        if self.cursor >= len(self.plan):
            return None
        return self.plan[self.cursor]

    def is_filled(self, index: int) -> bool:
        return 0 <= index < len(self.slots) and self.slots[index] is not None

    def fill(self, index: int, block: ContentBlock) -> None:
        if self.plan[index].value != block.kind:
            raise ValueError(f"slot {index} expects a {self.plan[index].value} block, got {block.kind}")
        if isinstance(block, QuizBlock) and len(block.questions) != self.quiz_interval:
            raise ValueError(f"a quiz needs {self.quiz_interval} questions, got {len(block.questions)}")
        self.slots[index] = block

    def clear_from(self, index: int) -> None:
        """Drop filled slots at or after ``index`` that were never shown."""
        start = max(index, self.cursor)
        for i in range(start, len(self.slots)):
            self.slots[i] = None

    def advance(self) -> Union[ContentBlock, _EndOfLevel]:
        if self.cursor >= len(self.plan):
            return END_OF_LEVEL
        block = self.slots[self.cursor]
        if block is None:
            raise ContentNotReady(f"slot {self.cursor} is empty")
        self.cursor += 1
        if isinstance(block, FactBlock):
            self.facts_shown += 1
        return block

    def fact_position(self, index: int) -> int:
        """1-based fact number of the fact slot at ``index``."""
        return sum(1 for kind in self.plan[:index + 1] if kind is BlockKind.FACT)

    def known_facts(self, before: int) -> List[str]:
        return [b.fact.fact for b in self.slots[:before] if isinstance(b, FactBlock)]

    def facts_for_quiz(self, index: int) -> List[Fact]:
        if self.plan[index] is not BlockKind.QUIZ:
            raise ValueError(f"slot {index} is not a quiz")
        window = self.slots[index - self.quiz_interval:index]
        if any(not isinstance(b, FactBlock) for b in window):
            raise ContentNotReady(f"facts before quiz slot {index} are not ready")
        return [b.fact for b in window]

    def reset(self) -> None:
        self.cursor = 0
        self.facts_shown = 0
