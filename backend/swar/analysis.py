"""
AI Analysis Client
==================

Sends a finished session's responses to the language model gateway and turns
its verdict into a validated `AIAnalysis`.

The model output is untrusted. Two failure paths never raise past `analyze`:

- transport failures (429, 402, anything else) become a degraded analysis with
  `is_flagged=False`, `overall_accuracy=0` and the error kind attached;
- output that is not valid structured data becomes a degraded analysis with
  `is_flagged=True` and the raw text kept, so an uninterpretable answer always
  leads to follow-up rather than a silent miss.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Type

from pydantic import BaseModel, Field, ValidationError

from .errors import SCHEMA_ERROR, SchemaError, TransportError
from .llm_client import GatewayClient
from .question_bank import AssessmentType
from .schemas import AIAnalysis, DyscalculiaAnalysis, DyslexiaAnalysis, Response

logger = logging.getLogger(__name__)


# ============================================================================
# WIRE CONTRACT
# ============================================================================

class ResponsePayload(BaseModel):
	transcript: str
	expectedAnswer: str
	questionType: str
	responseTimeMs: Optional[int] = None


class AnalysisRequest(BaseModel):
	sessionType: AssessmentType
	grade: int = Field(ge=1, le=12)
	allResponses: Optional[List[ResponsePayload]] = None
	# Single-response mode
	transcript: Optional[str] = None
	expectedAnswer: Optional[str] = None
	questionType: Optional[str] = None


def build_request_payload(responses: Sequence[Response], assessment_type: str, grade: int) -> AnalysisRequest:
	return AnalysisRequest(
		sessionType=assessment_type,
		grade=grade,
		allResponses=[
			ResponsePayload(
				transcript=r.transcript,
				expectedAnswer=r.expected_answer,
				questionType=r.kind,
				responseTimeMs=r.response_latency_ms,
			)
			for r in responses
		],
	)


# ============================================================================
# PROMPTS
# ============================================================================

def build_system_prompt(assessment_type: str, grade: int) -> str:
	"""Rubric for the assessment type, with grade-appropriate expectations."""
	if assessment_type == "dyslexia":
		return f"""
You are an expert speech-language pathologist screening children for dyslexia from short spoken responses.

Flag the student when these criteria are met:
1. Phoneme Error Rate above 10% on reading and naming tasks
2. Consistent phoneme confusions: labials (b, p, m), fricatives (s, f, v), stops (t, d, k, g)
3. Syllable stress patterns that deviate on multi-syllable words
4. Letter reversals such as b/d and p/q
5. Word substitutions with visually similar words
6. Omitted or added phonemes

Judge against what is typical for a grade {grade} student.

Return STRICT JSON only with these keys:
{{
  "phonemeErrorRate": number (0-100),
  "phonemeConfusions": array of confused phoneme pairs as strings, e.g. "b/d",
  "syllableStressErrors": boolean,
  "letterReversals": array of strings,
  "wordSubstitutions": array of strings,
  "overallAccuracy": number (0-100),
  "confidence": number (0-100),
  "detailedAnalysis": string,
  "isFlagged": boolean
}}
""".strip()
	return f"""
You are an expert in dyscalculia screening, analysing children's spoken numerical responses.

Flag the student when these criteria are met:
1. Transcoding errors between number words and digits (21 vs 12, 6 vs 9)
2. Place-value misunderstanding, e.g. reading 5007 as "five hundred seven"
3. Counting errors, including skip-counting
4. Confusing operations (+, -, ×, ÷)
5. Number sequence errors: wrong order or missing numbers
6. Consistent arithmetic errors
7. Slow responses suggesting retrieval difficulties

Judge against what is typical for a grade {grade} student.

Return STRICT JSON only with these keys:
{{
  "transcodingErrors": array of strings,
  "placeValueErrors": boolean,
  "countingAccuracy": number (0-100),
  "operationConfusion": boolean,
  "sequenceErrors": array of strings,
  "calculationAccuracy": number (0-100),
  "overallAccuracy": number (0-100),
  "confidence": number (0-100),
  "detailedAnalysis": string,
  "isFlagged": boolean
}}
""".strip()


def build_user_prompt(request: AnalysisRequest) -> str:
	if request.allResponses:
		blocks = []
		for i, r in enumerate(request.allResponses, start=1):
			latency = f"{r.responseTimeMs}ms" if r.responseTimeMs is not None else "N/A"
			blocks.append(
				f"Question {i}:\n"
				f"- Type: {r.questionType}\n"
				f"- Expected: \"{r.expectedAnswer}\"\n"
				f"- Response: \"{r.transcript}\"\n"
				f"- Response Time: {latency}"
			)
		return (
			"Analyze this complete session with multiple responses:\n\n"
			+ "\n\n".join(blocks)
			+ "\n\nProvide a comprehensive session analysis with an overall flagging decision."
		)
	return (
		"Analyze this single response:\n"
		f"- Question Type: {request.questionType or 'N/A'}\n"
		f"- Expected Answer: \"{request.expectedAnswer or ''}\"\n"
		f"- Student's Response: \"{request.transcript or ''}\"\n\n"
		"Provide the analysis in JSON format."
	)


# ============================================================================
# PARSING
# ============================================================================

def _extract_json_block(text: str) -> Dict[str, Any]:
	"""Parse the model output as a JSON object, tolerating surrounding prose or fences."""
	try:
		data = json.loads(text)
	except Exception:
		data = None
		match = re.search(r"\{[\s\S]*\}", text or "")
		if match:
			try:
				data = json.loads(match.group(0))
			except Exception:
				data = None
	if not isinstance(data, dict):
		raise SchemaError("Could not parse structured response", raw_text=text or "")
	return data


def analysis_model_for(assessment_type: str) -> Type[AIAnalysis]:
	return DyslexiaAnalysis if assessment_type == "dyslexia" else DyscalculiaAnalysis


def parse_analysis(text: str, assessment_type: str) -> AIAnalysis:
	"""Validate raw model output against the assessment type's schema."""
	data = _extract_json_block(text)
	# Degradation markers are ours to set, never the model's
	data.pop("errorKind", None)
	data.pop("rawText", None)
	try:
		return analysis_model_for(assessment_type).model_validate(data)
	except ValidationError as err:
		raise SchemaError(f"Analysis does not match schema: {err.error_count()} error(s)", raw_text=text) from err


def transport_degraded(error: TransportError) -> AIAnalysis:
	return AIAnalysis(
		overall_accuracy=0,
		confidence=0,
		detailed_analysis=str(error),
		is_flagged=False,
		error_kind=error.kind,
	)


def schema_degraded(raw_text: str) -> AIAnalysis:
	return AIAnalysis(
		overall_accuracy=0,
		confidence=0,
		detailed_analysis=raw_text,
		is_flagged=True,
		error_kind=SCHEMA_ERROR,
		raw_text=raw_text,
	)


# ============================================================================
# CLIENT
# ============================================================================

class AnalysisClient:
	def __init__(self, client_factory: Callable[[], GatewayClient] = GatewayClient) -> None:
		self._client_factory = client_factory

	async def analyze(self, responses: Sequence[Response], assessment_type: str, grade: int) -> AIAnalysis:
		return await self.analyze_request(build_request_payload(responses, assessment_type, grade))

	async def analyze_request(self, request: AnalysisRequest) -> AIAnalysis:
		system_prompt = build_system_prompt(request.sessionType, request.grade)
		user_prompt = build_user_prompt(request)
		client = self._client_factory()
		try:
			raw = await client.complete_json(system_prompt, user_prompt)
		except TransportError as err:
			logger.warning("AI analysis transport failure (%s): %s", err.kind, err)
			return transport_degraded(err)
		finally:
			await client.aclose()
		try:
			return parse_analysis(raw, request.sessionType)
		except SchemaError as err:
			logger.warning("AI analysis schema failure: %s", err)
			return schema_degraded(err.raw_text)
