import base64
import json
import random
import logging
from typing import Any, Dict, List, Optional
import google.generativeai as genai
from google.generativeai.vision_models import ImageGenerationModel
from pydantic import ValidationError
from time import perf_counter
from ..config import Settings, settings as default_settings
from ..errors import ContentProviderError
from ..models import FactDraft, QuizQuestion
from ..persona import FACT_SYSTEM_INSTRUCTION, QUIZ_SYSTEM_INSTRUCTION
from .prompt_builder import PromptBuilder

logger = logging.getLogger("cosmoquest")

class GeminiContentProvider:
    def __init__(self, config: Optional[Settings] = None) -> None:
        self.settings = config or default_settings
        if self.settings.gemini_api_key:
            genai.configure(api_key=self.settings.gemini_api_key)
        self.model_name = self.settings.gemini_model
        self.image_model_name = self.settings.gemini_image_model
        self.generation_config = {
            "temperature": 0.9,
            "top_p": 0.95,
            "response_mime_type": "application/json",
        }
        self.prompt_builder = PromptBuilder()

    def _strip_code_fences(self, text: str) -> str:
        t = text.strip()
        if t.startswith("```"):
            parts = t.split("\n", 1)
            if len(parts) == 2:
                t = parts[1]
            if t.endswith("```"):
                t = t[:-3]
        if t.startswith("json\n"):
            t = t[5:]
        return t.strip()

    def _coerce_payload_to_list(self, obj: Any) -> List[Dict[str, Any]]:
        if isinstance(obj, list):
            return obj
        if isinstance(obj, dict):
            for key in ("questions", "quiz"):
                if key in obj and isinstance(obj[key], list):
                    return obj[key]
        return []

    def _try_slice(self, text: str, open_char: str, close_char: str) -> Any:
        first = text.find(open_char)
        last = text.rfind(close_char)
        if first == -1 or last == -1 or last <= first:
            return None
        try:
            return json.loads(text[first:last + 1])
        except ValueError:
            return None

    def _parse_json(self, raw_text: str, open_char: str, close_char: str) -> Any:
        cleaned = self._strip_code_fences(raw_text)
        try:
            return json.loads(cleaned)
        except ValueError:
            sliced = self._try_slice(cleaned, open_char, close_char)
            if sliced is None:
                raise ValueError("payload_unparseable")
            return sliced

    def _norm_text(self, text: str) -> str:
        return (text or "").strip().lower()

    def _response_text(self, response: Any) -> str:
        raw_text = ""
        try:
            raw_text = (response.text or "").strip()
        except ValueError:
            # .text raises when the candidate has no simple text part
            raw_text = ""
        if not raw_text and getattr(response, "candidates", None):
            try:
                parts = response.candidates[0].content.parts
                raw_text = "".join(getattr(p, "text", "") for p in parts)
            except (AttributeError, IndexError):
                raw_text = ""
        return raw_text

    def _generate_json(self, prompt: str, system_instruction: str, event: str) -> str:
        if not self.settings.gemini_api_key:
            logger.warning({"event": "gemini_no_api_key", "call": event})
            raise ContentProviderError("gemini_no_api_key")
        logger.debug({"event": "gemini_request", "call": event, "model": self.model_name, "prompt_chars": len(prompt)})
        model = genai.GenerativeModel(self.model_name, generation_config=self.generation_config, system_instruction=system_instruction)
        t0 = perf_counter()
        response = model.generate_content(prompt)
        latency_ms = int((perf_counter() - t0) * 1000)
        raw_text = self._response_text(response)
        output_tokens = None
        usage = getattr(response, "usage_metadata", None)
        if usage is not None:
            output_tokens = getattr(usage, "candidates_token_count", None)
        logger.debug({"event": "gemini_response", "call": event, "preview": raw_text[:200], "latency_ms": latency_ms, "output_tokens": output_tokens})
        return raw_text

    def _parse_fact(self, raw_text: str) -> FactDraft:
        payload = self._parse_json(raw_text, "{", "}")
        if isinstance(payload, list) and payload and isinstance(payload[0], dict):
            payload = payload[0]
        if not isinstance(payload, dict):
            raise ValueError("payload_not_object")
        if "imagePrompt" in payload and "image_prompt" not in payload:
            payload["image_prompt"] = payload["imagePrompt"]
        return FactDraft.model_validate(payload)

    def _snap_answer(self, options: List[str], answer: str) -> Optional[str]:
        if answer in options:
            return answer
        wanted = self._norm_text(answer)
        return next((o for o in options if self._norm_text(o) == wanted), None)

    def _shuffle_options(self, options: List[str]) -> List[str]:
        shuffled = options.copy()
        random.shuffle(shuffled)
        return shuffled

    def _parse_quiz(self, raw_text: str, expected: int) -> List[QuizQuestion]:
        payload = self._coerce_payload_to_list(self._parse_json(raw_text, "[", "]"))
        if not payload:
            raise ValueError("payload_not_list")
        questions: List[QuizQuestion] = []
        for item in payload[:expected]:
            if not isinstance(item, dict):
                continue
            options = [str(o).strip() for o in item.get("options", []) if isinstance(o, (str, int, float))]
            answer = item.get("correct_answer", item.get("correctAnswer"))
            if answer is None and isinstance(item.get("correct_index"), int) and 0 <= item["correct_index"] < len(options):
                answer = options[item["correct_index"]]
            correct = self._snap_answer(options, str(answer or "").strip())
            if correct is None:
                logger.debug({"event": "quiz_question_dropped", "reason": "answer_not_in_options", "question": item.get("question")})
                continue
            try:
                questions.append(QuizQuestion(question=str(item.get("question", "")), options=self._shuffle_options(options), correct_answer=correct))
            except ValidationError:
                logger.debug({"event": "quiz_question_dropped", "reason": "invalid_shape", "question": item.get("question")})
        if len(questions) != expected:
            raise ValueError(f"expected {expected} questions, got {len(questions)}")
        return questions

    def generate_fact(self, position: int, known_facts: List[str], difficulty: int) -> FactDraft:
        prompt = self.prompt_builder.build_fact(difficulty=difficulty, position=position, known_facts=known_facts, facts_per_level=self.settings.facts_per_level)
        try:
            raw_text = self._generate_json(prompt, FACT_SYSTEM_INSTRUCTION, "fact")
            draft = self._parse_fact(raw_text)
        except ContentProviderError:
            raise
        except Exception as e:
            logger.exception("gemini_fact_failed")
            raise ContentProviderError("Failed to get a fact from the cosmos. Please try again.") from e
        logger.debug({"event": "fact_generated", "position": position, "difficulty": difficulty, "fact": draft.fact})
        return draft

    def generate_image(self, prompt: str) -> str:
        if not self.settings.gemini_api_key:
            raise ContentProviderError("gemini_no_api_key")
        try:
            t0 = perf_counter()
            result = ImageGenerationModel(self.image_model_name).generate_images(
                prompt=prompt,
                number_of_images=1,
                aspect_ratio="16:9",
            )
            images = list(getattr(result, "images", None) or [])
            if not images:
                raise ValueError("no_image_generated")
            image_bytes = getattr(images[0], "_image_bytes", None) or getattr(images[0], "image_bytes", None)
            if not image_bytes:
                raise ValueError("image_without_bytes")
            logger.debug({"event": "image_generated", "latency_ms": int((perf_counter() - t0) * 1000), "bytes": len(image_bytes)})
        except Exception as e:
            logger.exception("gemini_image_failed")
            raise ContentProviderError("The cosmic observatory seems to be having issues. Could not generate an image.") from e
        return "data:image/jpeg;base64," + base64.b64encode(image_bytes).decode("ascii")

    def generate_quiz(self, facts: List[str], difficulty: int) -> List[QuizQuestion]:
        prompt = self.prompt_builder.build_quiz(difficulty=difficulty, facts=facts)
        try:
            raw_text = self._generate_json(prompt, QUIZ_SYSTEM_INSTRUCTION, "quiz")
            questions = self._parse_quiz(raw_text, len(facts))
        except ContentProviderError:
            raise
        except Exception as e:
            logger.exception("gemini_quiz_failed")
            raise ContentProviderError("Failed to generate a quiz. The cosmos is quiet for now.") from e
        logger.debug({"event": "quiz_generated", "difficulty": difficulty, "count": len(questions)})
        return questions
