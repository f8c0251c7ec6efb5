import os
from pydantic import BaseModel, model_validator
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseModel):
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    gemini_image_model: str = os.getenv("GEMINI_IMAGE_MODEL", "imagen-3.0-generate-002")
    generate_images: bool = os.getenv("GENERATE_IMAGES", "true").lower() == "true"
    quiz_interval: int = int(os.getenv("QUIZ_INTERVAL", "5"))
    facts_per_level: int = int(os.getenv("FACTS_PER_LEVEL", "15"))
    preload_policy: str = os.getenv("PRELOAD_POLICY", "level")
    preload_batch_size: int = int(os.getenv("PRELOAD_BATCH_SIZE", "5"))
    session_reset_delay_seconds: float = float(os.getenv("SESSION_RESET_DELAY_SECONDS", "3.0"))
    log_level: str = os.getenv("LOG_LEVEL", "DEBUG")

    @model_validator(mode="after")
    def _check_level_shape(self) -> "Settings":
        if self.quiz_interval <= 0:
            raise ValueError("quiz_interval must be positive")
        if self.facts_per_level <= 0 or self.facts_per_level % self.quiz_interval:
            raise ValueError("facts_per_level must be a positive multiple of quiz_interval")
        if self.preload_batch_size <= 0:
            raise ValueError("preload_batch_size must be positive")
        if self.preload_policy not in ("on_demand", "lookahead", "batch", "level"):
            raise ValueError(f"unknown preload_policy: {self.preload_policy}")
        return self

settings = Settings()
