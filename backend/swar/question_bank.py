"""
Question Bank
=============

Grade-banded speaking exercises for the two screenings. Lookups are pure:
the same (grade, assessment type) always yields the same ordered exercises.

Grades are clamped to 1–12 and grouped into four bands
(1–3, 4–6, 7–9, 10–12), each with eight exercises per assessment type.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Tuple

from pydantic import BaseModel, ConfigDict


AssessmentType = Literal["dyslexia", "dyscalculia"]
ExerciseKind = Literal["phoneme", "word", "sentence", "number", "calculation"]

ASSESSMENT_TYPES: List[str] = ["dyslexia", "dyscalculia"]
EXERCISE_KINDS: List[str] = ["phoneme", "word", "sentence", "number", "calculation"]

MIN_GRADE = 1
MAX_GRADE = 12

# (lowest grade, highest grade) per band
GRADE_BANDS: List[Tuple[int, int]] = [(1, 3), (4, 6), (7, 9), (10, 12)]


class Exercise(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str
	prompt_text: str
	expected_answer: str
	kind: ExerciseKind


# (prompt, expected answer, kind)
_DYSLEXIA: List[List[Tuple[str, str, str]]] = [
	[
		('Please say the word: "APPLE"', "apple", "word"),
		('Please say the word: "BUTTERFLY"', "butterfly", "word"),
		('Say the sounds in "CAT" (C-A-T)', "c a t", "phoneme"),
		('Read this sentence: "The quick brown fox jumps"', "the quick brown fox jumps", "sentence"),
		('Please say the word: "ELEPHANT"', "elephant", "word"),
		("Say these letters: B, D, P, Q", "b d p q", "phoneme"),
		('What rhymes with "CAT"?', "bat hat mat sat", "phoneme"),
		('Please say: "CHOCOLATE"', "chocolate", "word"),
	],
	[
		('Please say the word: "NECESSARY"', "necessary", "word"),
		('Say the sounds in "SHIP" (SH-I-P)', "sh i p", "phoneme"),
		('Read this sentence: "The girl dropped her blue pencil"', "the girl dropped her blue pencil", "sentence"),
		('Please say the word: "DINOSAUR"', "dinosaur", "word"),
		("Say these letters: M, N, W, U", "m n w u", "phoneme"),
		('What rhymes with "LIGHT"?', "night kite bright sight", "phoneme"),
		('Please say the word: "BEAUTIFUL"', "beautiful", "word"),
		('Read this sentence: "We walked to the park after lunch"', "we walked to the park after lunch", "sentence"),
	],
	[
		('Please say the word: "ENVIRONMENT"', "environment", "word"),
		('Please say the word: "PHOTOGRAPH"', "photograph", "word"),
		('Say the syllables in "INFORMATION" (IN-FOR-MA-TION)', "in for ma tion", "phoneme"),
		('Read this sentence: "The scientist carefully recorded every observation"', "the scientist carefully recorded every observation", "sentence"),
		('What rhymes with "STATION"?', "nation relation creation", "phoneme"),
		('Please say the word: "PARALLEL"', "parallel", "word"),
		("Say these letters: B, D, P, Q, G", "b d p q g", "phoneme"),
		('Read this sentence: "Although it rained, the match continued"', "although it rained the match continued", "sentence"),
	],
	[
		('Please say the word: "RHYTHM"', "rhythm", "word"),
		('Please say the word: "PHENOMENON"', "phenomenon", "word"),
		('Read this sentence: "The committee postponed the conference indefinitely"', "the committee postponed the conference indefinitely", "sentence"),
		('Say the syllables in "RESPONSIBILITY" (RE-SPON-SI-BIL-I-TY)', "re spon si bil i ty", "phoneme"),
		('Please say the word: "ENTREPRENEUR"', "entrepreneur", "word"),
		('Read this sentence: "Psychology explores how people think and behave"', "psychology explores how people think and behave", "sentence"),
		('What rhymes with "DEVOTION"?', "ocean motion potion lotion", "phoneme"),
		('Please say the word: "MISCHIEVOUS"', "mischievous", "word"),
	],
]

_DYSCALCULIA: List[List[Tuple[str, str, str]]] = [
	[
		("Count from 1 to 10", "1 2 3 4 5 6 7 8 9 10", "number"),
		("What is 5 + 3?", "8", "calculation"),
		("What is 10 - 4?", "6", "calculation"),
		("Count backwards from 10 to 1", "10 9 8 7 6 5 4 3 2 1", "number"),
		("What is 2 × 3?", "6", "calculation"),
		("What number comes after 15?", "16", "number"),
		("What is 12 ÷ 4?", "3", "calculation"),
		("Skip count by 2s: 2, 4, 6...", "2 4 6 8 10", "number"),
	],
	[
		("Read this number aloud: 5007", "5007", "number"),
		("What is 7 × 8?", "56", "calculation"),
		("What is 45 + 38?", "83", "calculation"),
		("Count backwards by 3s from 30", "30 27 24 21 18", "number"),
		("What is 100 - 37?", "63", "calculation"),
		("Which is bigger: 0.5 or 0.25?", "0.5", "number"),
		("What is 72 ÷ 9?", "8", "calculation"),
		("What number comes before 1000?", "999", "number"),
	],
	[
		("What is 15% of 200?", "30", "calculation"),
		("Read this number aloud: 3042", "3042", "number"),
		("What is 12 × 12?", "144", "calculation"),
		("What is three quarters of 20?", "15", "calculation"),
		("Count backwards by 7s from 50", "50 43 36 29 22", "number"),
		("What is -5 + 12?", "7", "calculation"),
		("What is 2 to the power of 5?", "32", "number"),
		("What is 0.3 × 10?", "3", "calculation"),
	],
	[
		("What is 25 × 16?", "400", "calculation"),
		("Read this number aloud: 1204050", "1204050", "number"),
		("What is the square root of 169?", "13", "calculation"),
		("What is 18% of 50?", "9", "calculation"),
		("Continue the sequence: 1, 1, 2, 3, 5...", "8 13 21", "number"),
		("Solve for x: 3x + 4 = 19", "5", "calculation"),
		("What is 7 squared minus 9?", "40", "calculation"),
		("Count backwards by 6s from 60", "60 54 48 42 36", "number"),
	],
]


def _build(prefix: str, bands: List[List[Tuple[str, str, str]]]) -> List[Tuple[Exercise, ...]]:
	built: List[Tuple[Exercise, ...]] = []
	for band_index, rows in enumerate(bands, start=1):
		built.append(
			tuple(
				Exercise(id=f"{prefix}{band_index}-{n:02d}", prompt_text=prompt, expected_answer=answer, kind=kind)
				for n, (prompt, answer, kind) in enumerate(rows, start=1)
			)
		)
	return built


_BANK: Dict[str, List[Tuple[Exercise, ...]]] = {
	"dyslexia": _build("dx", _DYSLEXIA),
	"dyscalculia": _build("dc", _DYSCALCULIA),
}


def clamp_grade(grade: int) -> int:
	return max(MIN_GRADE, min(int(grade), MAX_GRADE))


def band_index_for(grade: int) -> int:
	"""Index into GRADE_BANDS for a (clamped) grade."""
	g = clamp_grade(grade)
	for i, (low, high) in enumerate(GRADE_BANDS):
		if low <= g <= high:
			return i
	return len(GRADE_BANDS) - 1


def questions_for(grade: int, assessment_type: str) -> Tuple[Exercise, ...]:
	"""Ordered exercises for a grade and assessment type.

	Grades outside 1–12 clamp to the nearest bound. An unknown assessment type
	yields an empty tuple.
	"""
	bands = _BANK.get(assessment_type)
	if not bands:
		return ()
	return bands[band_index_for(grade)]
