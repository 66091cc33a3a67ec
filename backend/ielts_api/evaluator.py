"""IELTS writing evaluation through the configured language model.

The examiner instructions live here and are sent as the system message; the
user message carries only the tasks being (re)evaluated.
"""
from __future__ import annotations
import json
import logging
import re
from typing import Any, Dict

from .llm_client import LLMClient, LLMError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert IELTS Writing examiner. Evaluate writing tasks strictly according to the official IELTS Writing Band Descriptors.

Return valid JSON only. No additional text, explanations, or markdown formatting.

For each task provided, give:
1. Band scores (0-9, half bands allowed) for: task_achievement (Task 1) OR task_response (Task 2), coherence_cohesion, lexical_resource, grammatical_accuracy
2. overall_band for the task
3. feedback: detailed evaluation of 280-320 words (never more than 350)
4. improvements: the 2-3 most important actionable improvements with practical strategies
5. For EACH criterion a "<criterion>_details" string naming specific mistakes with examples quoted from the answer

Criteria guidance:
- Task Response (Task 2): relevance of ideas, full development with reasons and examples, a clear and consistent position, lapses such as missing explanation or unclear arguments.
- Task Achievement (Task 1): Academic - key features selected, compared and illustrated accurately. General Training - every bullet point addressed and extended. Flag irrelevant or missing content.
- Grammatical accuracy: agreement, articles, prepositions, punctuation; range and accuracy of structures. Give 2-4 mistakes with corrections.
- Lexical resource: appropriacy, collocation, precision, spelling, register, less common vocabulary. Give 2-4 issues with better alternatives.
- Coherence and cohesion: paragraphing, logical progression, referencing, repetition, linking devices. Give 2-3 examples.

Response format:
{
  "task1": {
    "task_achievement": 6.5, "task_achievement_details": "...",
    "coherence_cohesion": 6.0, "coherence_cohesion_details": "...",
    "lexical_resource": 6.5, "lexical_resource_details": "...",
    "grammatical_accuracy": 6.0, "grammatical_accuracy_details": "...",
    "overall_band": 6.0,
    "feedback": "...",
    "improvements": ["...", "..."]
  },
  "task2": {
    "task_response": 6.5, "task_response_details": "...",
    "coherence_cohesion": 6.5, "coherence_cohesion_details": "...",
    "lexical_resource": 6.0, "lexical_resource_details": "...",
    "grammatical_accuracy": 6.5, "grammatical_accuracy_details": "...",
    "overall_band": 6.5,
    "feedback": "...",
    "improvements": ["...", "..."]
  }
}

Only include the tasks that were submitted."""

_TASK_HEADINGS = {
	1: "TASK 1 (Academic/General Training Writing)",
	2: "TASK 2 (Essay Writing)",
}


def build_user_message(tasks: Dict[int, Dict[str, Any]]) -> str:
	parts = []
	for number in sorted(tasks):
		task = tasks[number]
		parts.append(
			f"{_TASK_HEADINGS[number]}:\n"
			f"Question: {task['question']}\n\n"
			f"Student's Answer ({task['word_count']} words):\n{task['answer']}\n"
		)
	parts.append("Provide evaluation as JSON only.")
	return "\n".join(parts)


def _parse_candidates(text: str):
	yield text
	code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
	if code_block:
		yield code_block.group(1)
	first = text.find("{")
	last = text.rfind("}")
	if first != -1 and last > first:
		yield text[first : last + 1]


def _extract_json_object(text: str) -> Dict[str, Any]:
	for candidate in _parse_candidates(text):
		try:
			data = json.loads(candidate)
		except ValueError:
			continue
		if isinstance(data, dict):
			return data
	raise LLMError("Language model did not return a JSON object")


async def evaluate_writing_test(tasks: Dict[int, Dict[str, Any]]) -> Dict[str, Any]:
	"""Evaluate the given tasks and return ``{"task1": {...}, "task2": {...}}``.

	``tasks`` maps task number to ``question``/``answer``/``word_count``. Only
	keys for requested tasks are kept from the provider's reply.

	Raises:
		LLMError: provider unreachable, failing, or replying with unusable JSON
	"""
	client = LLMClient()
	try:
		raw = await client.generate_json(SYSTEM_PROMPT, build_user_message(tasks))
	finally:
		await client.aclose()
	data = _extract_json_object(raw)
	result: Dict[str, Any] = {}
	for number in tasks:
		key = f"task{number}"
		evaluation = data.get(key)
		if not isinstance(evaluation, dict):
			raise LLMError(f"Language model response is missing {key}")
		result[key] = evaluation
	if client.last_usage:
		result["tokens_used"] = client.last_usage.get("total_tokens", 0)
	result["model"] = client.model
	logger.info("Evaluated tasks %s with %s", sorted(tasks), client.model)
	return result
