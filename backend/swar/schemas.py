from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Response(BaseModel):
	"""One submitted answer. Created once per exercise and never mutated."""
	model_config = ConfigDict(frozen=True)

	exercise_id: str
	prompt_text_snapshot: str
	expected_answer: str
	kind: str
	transcript: str
	is_correct: bool
	response_latency_ms: int = Field(ge=0)


def _as_text_list(value: Any) -> List[str]:
	# Models return pairs as "b/d", ["b", "d"] or {"from": "b", "to": "d"}
	if value is None:
		return []
	if not isinstance(value, list):
		value = [value]
	items: List[str] = []
	for item in value:
		if isinstance(item, (list, tuple)):
			items.append("/".join(str(v) for v in item))
		elif isinstance(item, dict):
			items.append("/".join(str(v) for v in item.values()))
		else:
			items.append(str(item))
	return items


class AIAnalysis(BaseModel):
	"""Fields every analysis carries, whatever the assessment type."""
	model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

	overall_accuracy: float = Field(alias="overallAccuracy", ge=0, le=100)
	confidence: float = Field(ge=0, le=100)
	detailed_analysis: str = Field(alias="detailedAnalysis")
	is_flagged: bool = Field(alias="isFlagged")
	# Set only on degraded analyses
	error_kind: Optional[str] = Field(default=None, alias="errorKind")
	raw_text: Optional[str] = Field(default=None, alias="rawText")

	@property
	def is_degraded(self) -> bool:
		return self.error_kind is not None


class DyslexiaAnalysis(AIAnalysis):
	phoneme_error_rate: float = Field(default=0, alias="phonemeErrorRate", ge=0, le=100)
	phoneme_confusions: List[str] = Field(default_factory=list, alias="phonemeConfusions")
	syllable_stress_errors: bool = Field(default=False, alias="syllableStressErrors")
	letter_reversals: List[str] = Field(default_factory=list, alias="letterReversals")
	word_substitutions: List[str] = Field(default_factory=list, alias="wordSubstitutions")

	@field_validator("phoneme_confusions", "letter_reversals", "word_substitutions", mode="before")
	@classmethod
	def coerce_lists(cls, value: Any) -> List[str]:
		return _as_text_list(value)


class DyscalculiaAnalysis(AIAnalysis):
	transcoding_errors: List[str] = Field(default_factory=list, alias="transcodingErrors")
	place_value_errors: bool = Field(default=False, alias="placeValueErrors")
	counting_accuracy: Optional[float] = Field(default=None, alias="countingAccuracy", ge=0, le=100)
	operation_confusion: bool = Field(default=False, alias="operationConfusion")
	sequence_errors: List[str] = Field(default_factory=list, alias="sequenceErrors")
	calculation_accuracy: Optional[float] = Field(default=None, alias="calculationAccuracy", ge=0, le=100)

	@field_validator("transcoding_errors", "sequence_errors", mode="before")
	@classmethod
	def coerce_lists(cls, value: Any) -> List[str]:
		return _as_text_list(value)


class SessionResult(BaseModel):
	"""Derived view of a session's responses; recomputed, never edited."""
	model_config = ConfigDict(frozen=True)

	local_score_percent: int
	correct_count: int
	total_count: int
	local_flag: bool
	ai_analysis: Optional[AIAnalysis] = None
	effective_flag: bool
