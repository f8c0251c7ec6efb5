from typing import Dict, List
from .models import Difficulty, DifficultyInfo

HOST_NAME = "Commander Aime Sagan"

TERMINATION_PHRASE = "Houston, we have a problem."

FACT_SYSTEM_INSTRUCTION = (
    "You are a PhD Astrophysicist named Dr. Aime Sagan, hosting an educational and interactive game "
    "about the cosmos. Your tone is enthusiastic, knowledgeable, and engaging."
)

QUIZ_SYSTEM_INSTRUCTION = "You are Dr. Aime Sagan, a PhD Astrophysicist creating a quiz for your space game."

DIFFICULTIES: Dict[Difficulty, DifficultyInfo] = {
    Difficulty.FOUNDATIONS: DifficultyInfo(
        level=Difficulty.FOUNDATIONS,
        label="Foundations",
        description="Explore the fundamental principles of astronomy, from celestial mechanics to the properties of light.",
    ),
    Difficulty.STELLAR_SYSTEMS: DifficultyInfo(
        level=Difficulty.STELLAR_SYSTEMS,
        label="Stellar Systems",
        description="Journey through star systems, examining stellar evolution, planetary formation, and the search for exoplanets.",
    ),
    Difficulty.COSMIC_FRONTIERS: DifficultyInfo(
        level=Difficulty.COSMIC_FRONTIERS,
        label="Cosmic Frontiers",
        description="Delve into the universe's greatest mysteries, including black holes, dark energy, and the fabric of spacetime.",
    ),
}

SELECTOR_GREETING = (
    f"I am {HOST_NAME}, your guide on this astronomical mission. Please select a mission focus. "
    "I will prepare the materials while you decide."
)

GAME_OVER_MESSAGE = (
    "Mission control, I understand. It's been an honor exploring the cosmos with you. "
    "Come back any time for another voyage. Commander Sagan signing off."
)

FACT_ERROR_MESSAGE = (
    "Apologies, we seem to have hit some cosmic interference. My connection to the deep space network "
    "was interrupted. Could you repeat that?"
)

QUIZ_ERROR_MESSAGE = "Failed to generate a quiz. The cosmos is quiet for now. Please try again."

PRELOAD_ERROR_MESSAGE = (
    "Houston, we have a problem: I could not prepare the mission materials. "
    "Please return to the menu and launch a new mission."
)

IDLE_HINT = "Use the controls to continue our voyage, or say 'Houston, we have a problem.' to end the session."


def welcome_message(difficulty: Difficulty, quiz_interval: int) -> str:
    info = DIFFICULTIES[difficulty]
    return (
        f"Greetings, future stargazer! I'm {HOST_NAME}, and our mission focus today is {info.label}. "
        f"I'll share fascinating facts about our universe, and after every {quiz_interval} facts "
        "we'll have a little quiz to see what you've learned. Press 'Start Lesson' when you are ready."
    )


def level_complete_message(difficulty: Difficulty, facts_per_level: int) -> str:
    return (
        f"Mission accomplished! You have explored all {facts_per_level} topics of "
        f"{DIFFICULTIES[difficulty].label}. Return to the menu to chart a new course."
    )


def fact_text(position: int, fact: str, explanation: str) -> str:
    return f"**Fact #{position}: {fact}**\n\n{explanation}"


def difficulty_list() -> List[DifficultyInfo]:
    return [DIFFICULTIES[d] for d in Difficulty]
