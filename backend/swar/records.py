"""Roster and session-record storage on top of the SQLAlchemy models."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .analysis import analysis_model_for
from .errors import InputError, PersistenceError
from .models import AssessmentRecord, Subject
from .schemas import AIAnalysis, SessionResult

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
MIN_AGE, MAX_AGE = 3, 25
MIN_GRADE, MAX_GRADE = 1, 12

STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"


class DashboardStats(BaseModel):
	total_subjects: int
	total_sessions: int
	flagged_sessions: int
	average_score: int


def validate_roster_entry(name: str, age: Optional[int], grade: Optional[int]) -> Tuple[str, Optional[int], int]:
	name = (name or "").strip()
	if not name:
		raise InputError("Name is required")
	if len(name) > MAX_NAME_LENGTH:
		raise InputError(f"Name must be less than {MAX_NAME_LENGTH} characters")
	if age is not None and not (MIN_AGE <= age <= MAX_AGE):
		raise InputError(f"Age must be between {MIN_AGE} and {MAX_AGE}")
	if grade is None or not (MIN_GRADE <= grade <= MAX_GRADE):
		raise InputError(f"Grade must be between {MIN_GRADE} and {MAX_GRADE}")
	return name, age, grade


def _commit(db: Session, action: str) -> None:
	try:
		db.commit()
	except SQLAlchemyError as err:
		db.rollback()
		logger.error("Failed to %s: %s", action, err)
		raise PersistenceError(f"Failed to {action}") from err


def create_subject(db: Session, teacher_username: str, name: str, age: Optional[int], grade: Optional[int]) -> Subject:
	name, age, grade = validate_roster_entry(name, age, grade)
	row = Subject(id=uuid.uuid4().hex, teacher_username=teacher_username, name=name, age=age, grade=grade)
	db.add(row)
	_commit(db, "add student")
	return row


def list_subjects(db: Session, teacher_username: str) -> List[Subject]:
	try:
		return (
			db.query(Subject)
			.filter(Subject.teacher_username == teacher_username)
			.order_by(Subject.created_at)
			.all()
		)
	except SQLAlchemyError as err:
		raise PersistenceError("Failed to load students") from err


def get_subject(db: Session, teacher_username: str, subject_id: str) -> Optional[Subject]:
	row = db.get(Subject, subject_id)
	if row is None or row.teacher_username != teacher_username:
		return None
	return row


def create_record(db: Session, teacher_username: str, subject_id: str, assessment_type: str, grade: int) -> AssessmentRecord:
	row = AssessmentRecord(
		id=uuid.uuid4().hex,
		subject_id=subject_id,
		teacher_username=teacher_username,
		assessment_type=assessment_type,
		grade=grade,
		status=STATUS_IN_PROGRESS,
	)
	db.add(row)
	_commit(db, "create session record")
	return row


def complete_record(db: Session, record_id: str, result: SessionResult) -> AssessmentRecord:
	"""The single completion write for a session record."""
	try:
		row = db.get(AssessmentRecord, record_id)
	except SQLAlchemyError as err:
		logger.error("Failed to load session record %s: %s", record_id, err)
		raise PersistenceError("Failed to save session result") from err
	if row is None:
		raise PersistenceError(f"Session record {record_id} not found")
	if row.status == STATUS_COMPLETED:
		raise PersistenceError(f"Session record {record_id} is already completed")
	row.status = STATUS_COMPLETED
	row.overall_score = result.local_score_percent
	row.flagged = result.effective_flag
	if result.ai_analysis is not None:
		row.ai_analysis_json = json.dumps(result.ai_analysis.model_dump(by_alias=True))
	row.completed_at = datetime.utcnow()
	db.add(row)
	_commit(db, "save session result")
	return row


def get_record(db: Session, teacher_username: str, record_id: str) -> Optional[AssessmentRecord]:
	row = db.get(AssessmentRecord, record_id)
	if row is None or row.teacher_username != teacher_username:
		return None
	return row


def stored_analysis(row: AssessmentRecord) -> Optional[AIAnalysis]:
	"""AI analysis saved with a completed record, if any."""
	if not row.ai_analysis_json:
		return None
	try:
		return analysis_model_for(row.assessment_type).model_validate(json.loads(row.ai_analysis_json))
	except (ValueError, ValidationError) as err:
		logger.warning("Unreadable AI analysis on record %s: %s", row.id, err)
		return None


def list_records(db: Session, teacher_username: str, subject_id: Optional[str] = None) -> List[AssessmentRecord]:
	q = db.query(AssessmentRecord).filter(AssessmentRecord.teacher_username == teacher_username)
	if subject_id:
		q = q.filter(AssessmentRecord.subject_id == subject_id)
	try:
		return q.order_by(AssessmentRecord.created_at.desc()).all()
	except SQLAlchemyError as err:
		raise PersistenceError("Failed to load sessions") from err


def dashboard_stats(db: Session, teacher_username: str) -> DashboardStats:
	subjects = list_subjects(db, teacher_username)
	records = list_records(db, teacher_username)
	scored = [r.overall_score for r in records if r.overall_score]
	# Halves round up
	average = (2 * sum(scored) + len(scored)) // (2 * len(scored)) if scored else 0
	return DashboardStats(
		total_subjects=len(subjects),
		total_sessions=len(records),
		flagged_sessions=sum(1 for r in records if r.flagged),
		average_score=average,
	)
