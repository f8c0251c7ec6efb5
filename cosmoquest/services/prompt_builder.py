import json
import os
from typing import List

PROMPT_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "prompts")

def load_template(name: str, fallback: str) -> str:
	path = os.path.join(PROMPT_DIR, f"{name}.txt")
	if not os.path.exists(path):
		path = os.path.join(PROMPT_DIR, f"{fallback}.txt")
	with open(path, "r", encoding="utf-8") as f:
		return f.read()

class PromptBuilder:
	def build_fact(self, *, difficulty: int, position: int, known_facts: List[str], facts_per_level: int) -> str:
		template = load_template(f"fact_level_{difficulty}", "fact_base")
		context = {
			"meta": {"difficulty": difficulty, "fact_level": position, "facts_per_level": facts_per_level},
			"previous_facts": known_facts,
			"format": {
				"fact": "string, a single interesting fact about the cosmos",
				"explanation": "string, a detailed, engaging explanation of the fact",
				"image_prompt": "string, a concise, descriptive prompt for an AI image generator to create a technically accurate visual illustration (diagram, chart, or depiction) of the fact",
			},
		}
		instructions = (
			"Use the CONTEXT JSON below to guide generation. "
			f"Your current fact level is {position} of {facts_per_level}; the depth should scale with this number within the mission focus. "
			"Generate a new, unique fact that does not repeat or paraphrase anything in previous_facts. "
			"Provide an engaging and detailed explanation, then a concise image prompt for an accurate illustration. "
			"Return only the JSON object described by format."
		)
		return template + "\n" + instructions + "\n" + json.dumps(context)

	def build_quiz(self, *, difficulty: int, facts: List[str]) -> str:
		template = load_template("quiz_base", "quiz_base")
		context = {
			"meta": {"difficulty": difficulty, "num_questions": len(facts)},
			"facts": [f"{i + 1}. {fact}" for i, fact in enumerate(facts)],
			"format": {
				"question_shape": {
					"question": "string",
					"options": ["string", "string", "string", "string"],
					"correct_answer": "string, exactly one of options",
				}
			},
		}
		instructions = (
			"Use the CONTEXT JSON below to guide generation. "
			f"Create exactly {len(facts)} questions, one per fact in facts, in order. "
			"Return only a JSON array of objects shaped like format.question_shape."
		)
		return template + "\n" + instructions + "\n" + json.dumps(context)
