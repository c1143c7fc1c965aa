"""
Report Exporter
===============

Renders a screening result as a PDF. Pure: no network, no mutation, and the
same inputs always produce the same bytes.
"""

from __future__ import annotations

from datetime import date as date_type
from io import BytesIO
from typing import List, Optional, Sequence, Tuple

from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from .schemas import AIAnalysis, DyscalculiaAnalysis, DyslexiaAnalysis, Response, SessionResult
from .scoring import interpret_score

# (font size, bold, text)
Line = Tuple[int, bool, str]

_MARGIN = 72
_WRAP = 90


def _wrap(text: str, width: int = _WRAP) -> List[str]:
	words = (text or "").split()
	lines: List[str] = []
	current = ""
	for word in words:
		if current and len(current) + 1 + len(word) > width:
			lines.append(current)
			current = word
		else:
			current = f"{current} {word}" if current else word
	if current:
		lines.append(current)
	return lines


def _ai_metric_lines(analysis: AIAnalysis) -> List[str]:
	rows = [
		f"Overall accuracy: {analysis.overall_accuracy:.0f}%",
		f"Confidence: {analysis.confidence:.0f}%",
	]
	if isinstance(analysis, DyslexiaAnalysis):
		rows.append(f"Phoneme error rate: {analysis.phoneme_error_rate:.0f}%")
		if analysis.phoneme_confusions:
			rows.append("Phoneme confusions: " + ", ".join(analysis.phoneme_confusions))
		if analysis.letter_reversals:
			rows.append("Letter reversals: " + ", ".join(analysis.letter_reversals))
		if analysis.word_substitutions:
			rows.append("Word substitutions: " + ", ".join(analysis.word_substitutions))
		rows.append(f"Syllable stress errors: {'Yes' if analysis.syllable_stress_errors else 'No'}")
	elif isinstance(analysis, DyscalculiaAnalysis):
		if analysis.transcoding_errors:
			rows.append("Transcoding errors: " + ", ".join(analysis.transcoding_errors))
		rows.append(f"Place-value errors: {'Yes' if analysis.place_value_errors else 'No'}")
		rows.append(f"Operation confusion: {'Yes' if analysis.operation_confusion else 'No'}")
		if analysis.counting_accuracy is not None:
			rows.append(f"Counting accuracy: {analysis.counting_accuracy:.0f}%")
		if analysis.calculation_accuracy is not None:
			rows.append(f"Calculation accuracy: {analysis.calculation_accuracy:.0f}%")
		if analysis.sequence_errors:
			rows.append("Sequence errors: " + ", ".join(analysis.sequence_errors))
	if analysis.is_degraded:
		rows.append("Note: the AI output could not be fully interpreted.")
	return rows


def report_lines(
	subject_name: str,
	grade: int,
	assessment_type: str,
	date: date_type,
	responses: Sequence[Response],
	result: SessionResult,
	*,
	teacher_name: Optional[str] = None,
) -> List[Line]:
	"""Text content of the report, top to bottom."""
	lines: List[Line] = [
		(18, True, f"{assessment_type.capitalize()} Screening Report"),
		(12, False, f"Student: {subject_name}"),
		(12, False, f"Grade: {grade}"),
		(12, False, f"Date: {date.isoformat()}"),
	]
	if teacher_name:
		lines.append((12, False, f"Teacher: {teacher_name}"))
	lines.append((12, False, ""))

	score = result.local_score_percent
	lines.append((14, True, f"Score: {score}% ({interpret_score(score)})"))
	if result.total_count > 0:
		lines.append((12, False, f"{result.correct_count} of {result.total_count} correct responses"))

	if result.effective_flag:
		lines.append((12, False, ""))
		lines.append((13, True, "FLAGGED: this student is recommended for further evaluation."))

	if result.ai_analysis is not None:
		lines.append((12, False, ""))
		lines.append((14, True, "AI Analysis"))
		for row in _ai_metric_lines(result.ai_analysis):
			lines.append((11, False, row))
		for row in _wrap(result.ai_analysis.detailed_analysis):
			lines.append((11, False, row))

	if responses:
		lines.append((12, False, ""))
		lines.append((14, True, "Question Breakdown"))
		for i, r in enumerate(responses, start=1):
			mark = "correct" if r.is_correct else "incorrect"
			lines.append((11, True, f"{i}. {r.prompt_text_snapshot}"))
			lines.append((11, False, f"   Expected: {r.expected_answer} | Said: {r.transcript} | {mark} | {r.response_latency_ms} ms"))

	lines.append((12, False, ""))
	lines.append((9, False, "Screening result only; this is not a clinical diagnosis."))
	return lines


def build_report_pdf(
	subject_name: str,
	grade: int,
	assessment_type: str,
	date: date_type,
	responses: Sequence[Response],
	result: SessionResult,
	*,
	teacher_name: Optional[str] = None,
) -> bytes:
	buffer = BytesIO()
	c = canvas.Canvas(buffer, pagesize=letter, invariant=1)
	c.setTitle(f"{assessment_type.capitalize()} Screening Report - {subject_name}")
	width, height = letter

	y = height - _MARGIN
	for size, bold, text in report_lines(
		subject_name, grade, assessment_type, date, responses, result, teacher_name=teacher_name
	):
		if y < _MARGIN:
			c.showPage()
			y = height - _MARGIN
		c.setFont("Helvetica-Bold" if bold else "Helvetica", size)
		if text:
			c.drawString(_MARGIN, y, text)
		y -= size + 6

	c.showPage()
	c.save()
	buffer.seek(0)
	return buffer.getvalue()
