import pytest

from backend.ielts_api.scoring import (
	SubmissionError,
	TaskState,
	calculate_average_band,
	count_words,
	merge_evaluation,
	resolve_tasks,
	round_band_score,
)


@pytest.mark.parametrize(
	"raw, expected",
	[
		(6.0, 6.0),
		(6.1, 6.0),
		(6.24, 6.0),
		(6.25, 6.5),
		(6.5, 6.5),
		(6.74, 6.5),
		(6.75, 7.0),
		(6.9, 7.0),
	],
)
def test_round_band_score_uses_quarter_thresholds(raw, expected) -> None:
	assert round_band_score(raw) == expected


def test_average_band_weights_task2_double() -> None:
	# (6 + 14) / 3 = 6.67
	assert calculate_average_band(6.0, 7.0) == 6.5
	# (5.5 + 13) / 3 = 6.17
	assert calculate_average_band(5.5, 6.5) == 6.0


def test_average_band_with_single_task() -> None:
	assert calculate_average_band(None, 6.25) == 6.5
	assert calculate_average_band(7.0, None) == 7.0
	assert calculate_average_band(None, None) == 0.0


def test_count_words_splits_on_any_whitespace() -> None:
	assert count_words("one  two\nthree\tfour") == 4
	assert count_words("") == 0
	assert count_words(None) == 0


def test_resolve_tasks_rejects_both_empty() -> None:
	with pytest.raises(SubmissionError):
		resolve_tasks(None, {1: "   ", 2: None}, {1: 150, 2: 250})


def test_resolve_tasks_rejects_answer_below_half_word_limit() -> None:
	with pytest.raises(SubmissionError, match="Task 2"):
		resolve_tasks(None, {1: None, 2: " ".join(["w"] * 124)}, {1: 150, 2: 250})
	merged, to_evaluate = resolve_tasks(None, {1: None, 2: " ".join(["w"] * 125)}, {1: 150, 2: 250})
	assert to_evaluate == [2]
	assert merged[2].word_count == 125


def test_resolve_tasks_keeps_previous_task_when_not_resupplied() -> None:
	stored_eval = {"overall_band": 6.0, "feedback": "old"}
	previous = {
		1: TaskState("old task one answer", 4, stored_eval),
		2: TaskState("old task two answer", 4, {"overall_band": 5.0}),
	}
	merged, to_evaluate = resolve_tasks(previous, {1: None, 2: "brand new essay"}, {})
	assert to_evaluate == [2]
	assert merged[1].answer == "old task one answer"
	assert merged[1].evaluation is stored_eval
	assert merged[2].answer == "brand new essay"
	assert merged[2].evaluation is None


def test_resolve_tasks_with_nothing_resupplied_keeps_everything() -> None:
	previous = {1: TaskState("kept", 1, {"overall_band": 6.0}), 2: TaskState()}
	merged, to_evaluate = resolve_tasks(previous, {}, {1: 150})
	assert to_evaluate == []
	assert merged[1].answer == "kept"


def test_merge_evaluation_takes_fresh_only_for_reevaluated_tasks() -> None:
	tasks = {
		1: TaskState("answer one", 2, {"overall_band": 6.0, "feedback": "old"}),
		2: TaskState("answer two", 2),
	}
	fresh = {
		"task1": {"overall_band": 9.0, "feedback": "should be ignored"},
		"task2": {"overall_band": 7.0},
		"tokens_used": 123,
	}
	merged = merge_evaluation(tasks, fresh, [2])
	assert merged["task1"]["feedback"] == "old"
	assert merged["task2"]["overall_band"] == 7.0
	assert merged["average_band"] == 6.5
	assert merged["tokens_used"] == 123


def test_merge_evaluation_zero_placeholder_for_missing_task() -> None:
	tasks = {1: TaskState(), 2: TaskState("essay", 1)}
	merged = merge_evaluation(tasks, {"task2": {"overall_band": 6.25}}, [2])
	assert merged["task1"]["overall_band"] == 0
	assert merged["task1"]["task_achievement"] == 0
	assert "task_response" not in merged["task1"]
	# The placeholder does not drag the average down
	assert merged["average_band"] == 6.5
