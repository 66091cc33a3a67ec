"""Band-score arithmetic and the merge rules for writing resubmissions."""
from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

TASK_NUMBERS = (1, 2)
MIN_WORD_RATIO = 0.5

# Task 1 is judged on task achievement, Task 2 on task response
_FIRST_CRITERION = {1: "task_achievement", 2: "task_response"}
_CRITERIA = ("coherence_cohesion", "lexical_resource", "grammatical_accuracy")


class SubmissionError(ValueError):
	pass


@dataclass
class TaskState:
	answer: Optional[str] = None
	word_count: int = 0
	evaluation: Optional[Dict[str, Any]] = None

	@property
	def has_answer(self) -> bool:
		return bool(self.answer and self.answer.strip())


def round_band_score(score: float) -> float:
	floor = math.floor(score)
	fraction = score - floor
	if fraction < 0.25:
		return float(floor)
	if fraction < 0.75:
		return floor + 0.5
	return float(math.ceil(score))


def calculate_average_band(task1_band: Optional[float], task2_band: Optional[float]) -> float:
	"""Overall writing band: Task 2 counts double when both tasks are present."""
	if task1_band is None and task2_band is None:
		return 0.0
	if task1_band is None:
		return round_band_score(task2_band)
	if task2_band is None:
		return round_band_score(task1_band)
	return round_band_score((task1_band + 2 * task2_band) / 3)


def count_words(text: Optional[str]) -> int:
	if not text:
		return 0
	return len(text.split())


def empty_task_evaluation(task_number: int) -> Dict[str, Any]:
	note = "No answer was provided for this task."
	evaluation: Dict[str, Any] = {}
	for criterion in (_FIRST_CRITERION[task_number],) + _CRITERIA:
		evaluation[criterion] = 0
		evaluation[f"{criterion}_details"] = note
	evaluation["overall_band"] = 0
	evaluation["feedback"] = f"No answer submitted for Task {task_number}."
	evaluation["improvements"] = [f"Please attempt Task {task_number} in your next submission."]
	return evaluation


def task_band(evaluation: Optional[Dict[str, Any]]) -> Optional[float]:
	if not evaluation:
		return None
	value = evaluation.get("overall_band")
	if value is None:
		return None
	try:
		return float(value)
	except (TypeError, ValueError):
		return None


def resolve_tasks(
	previous: Optional[Dict[int, TaskState]],
	supplied: Dict[int, Optional[str]],
	word_limits: Dict[int, Optional[int]],
) -> Tuple[Dict[int, TaskState], List[int]]:
	"""Combine a (re)submission with the previously stored tasks.

	A task counts as supplied when its answer is non-blank. Supplied tasks
	replace the stored ones and are returned for re-evaluation; the rest keep
	their stored answer and evaluation.

	Raises:
		SubmissionError: both tasks end up empty, or a supplied answer is
			shorter than half of its word limit
	"""
	previous = previous or {}
	merged: Dict[int, TaskState] = {}
	to_evaluate: List[int] = []
	for number in TASK_NUMBERS:
		answer = supplied.get(number)
		if answer is not None and answer.strip():
			answer = answer.strip()
			words = count_words(answer)
			limit = word_limits.get(number)
			if limit and words < limit * MIN_WORD_RATIO:
				raise SubmissionError(
					f"Task {number} answer is too short: {words} words, "
					f"at least {math.ceil(limit * MIN_WORD_RATIO)} required"
				)
			merged[number] = TaskState(answer=answer, word_count=words)
			to_evaluate.append(number)
		else:
			merged[number] = previous.get(number) or TaskState()
	if not any(state.has_answer for state in merged.values()):
		raise SubmissionError("At least one task must be answered")
	return merged, to_evaluate


def merge_evaluation(
	tasks: Dict[int, TaskState],
	fresh: Optional[Dict[str, Any]] = None,
	evaluated: Sequence[int] = (),
) -> Dict[str, Any]:
	"""Build the stored evaluation document from per-task results.

	``fresh`` is the provider's answer; only tasks listed in ``evaluated`` are
	taken from it. Retained tasks keep their stored evaluation and unanswered
	tasks get a zero-band placeholder. ``average_band`` is always recomputed.
	"""
	fresh = fresh or {}
	merged: Dict[str, Any] = {}
	bands: Dict[int, Optional[float]] = {}
	for number in TASK_NUMBERS:
		key = f"task{number}"
		state = tasks[number]
		if not state.has_answer:
			evaluation = empty_task_evaluation(number)
			bands[number] = None
		else:
			if number in evaluated:
				evaluation = fresh.get(key) or {}
			else:
				evaluation = state.evaluation or {}
			bands[number] = task_band(evaluation)
		state.evaluation = evaluation
		merged[key] = evaluation
	merged["average_band"] = calculate_average_band(bands[1], bands[2])
	for meta in ("tokens_used", "model"):
		if meta in fresh:
			merged[meta] = fresh[meta]
	return merged
