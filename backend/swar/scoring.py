"""
Scoring Engine
==============

Local correctness for a single response and the aggregate session result.

The correctness rule is a lenient heuristic, not a precision scorer: after
case-folding and trimming, a response counts as correct when the transcript
contains the first whitespace-delimited token of the expected answer. This
tolerates transcription noise ("the quick brown fox" for a five-word
sentence, "8 eight" for "8") at the cost of accepting some wrong answers.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from .schemas import AIAnalysis, Response, SessionResult


# Sessions scoring below this percentage are flagged for follow-up
FLAG_THRESHOLD_PERCENT = 75

# Score interpretation bands (lower bound, label)
INTERPRETATION_BANDS = [(85, "excellent"), (70, "good"), (55, "moderate")]
CONCERN_LABEL = "concern"

Matcher = Callable[[str, str], bool]


def normalize(text: str) -> str:
	return (text or "").casefold().strip()


def first_token_match(transcript: str, expected_answer: str) -> bool:
	"""True when the normalized transcript contains the expected answer's first token."""
	tokens = normalize(expected_answer).split()
	if not tokens:
		return False
	return tokens[0] in normalize(transcript)


def is_correct(transcript: str, expected_answer: str, matcher: Matcher = first_token_match) -> bool:
	"""Local verdict for one response. The transcript must be non-empty."""
	return matcher(transcript, expected_answer)


def score_percent(correct_count: int, total_count: int) -> int:
	"""100 * correct / total rounded to the nearest integer, halves rounding up."""
	if total_count <= 0:
		return 0
	return (200 * correct_count + total_count) // (2 * total_count)


def compute_result(
	responses: Sequence[Response],
	ai_analysis: Optional[AIAnalysis] = None,
	*,
	threshold: int = FLAG_THRESHOLD_PERCENT,
) -> SessionResult:
	correct_count = sum(1 for r in responses if r.is_correct)
	total_count = len(responses)
	percent = score_percent(correct_count, total_count)
	local_flag = percent < threshold
	return SessionResult(
		local_score_percent=percent,
		correct_count=correct_count,
		total_count=total_count,
		local_flag=local_flag,
		ai_analysis=ai_analysis,
		effective_flag=ai_analysis.is_flagged if ai_analysis is not None else local_flag,
	)


def summary_result(
	score_percent: int,
	flagged: bool,
	ai_analysis: Optional[AIAnalysis] = None,
	*,
	threshold: int = FLAG_THRESHOLD_PERCENT,
) -> SessionResult:
	"""Result rebuilt from a stored session record, which keeps no per-question counts.

	The record stores the effective flag; the local flag is only recoverable
	from the score when an AI analysis decided the effective one.
	"""
	return SessionResult(
		local_score_percent=score_percent,
		correct_count=0,
		total_count=0,
		local_flag=score_percent < threshold if ai_analysis is not None else flagged,
		ai_analysis=ai_analysis,
		effective_flag=flagged,
	)


def interpret_score(score: int) -> str:
	for lower, label in INTERPRETATION_BANDS:
		if score >= lower:
			return label
	return CONCERN_LABEL
