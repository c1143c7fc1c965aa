from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response as HTTPResponse
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from .. import records
from ..db import get_db
from ..errors import ScreeningError, http_status_for
from ..models import Subject
from ..reporting import build_report_pdf
from ..scoring import summary_result
from ..settings import settings
from .auth import Teacher, get_current_teacher

router = APIRouter(tags=["roster"])


class SubjectIn(BaseModel):
	name: str
	age: Optional[int] = None
	grade: Optional[int] = None


class SubjectOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: str
	name: str
	age: Optional[int] = None
	grade: int


class RecordOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: str
	subject_id: str
	assessment_type: str
	grade: int
	status: str
	overall_score: Optional[int] = None
	flagged: Optional[bool] = None
	created_at: datetime
	completed_at: Optional[datetime] = None


@router.post("/subjects", response_model=SubjectOut, status_code=201)
async def add_subject(req: SubjectIn, teacher: Teacher = Depends(get_current_teacher), db: Session = Depends(get_db)):
	try:
		return records.create_subject(db, teacher.username, req.name, req.age, req.grade)
	except ScreeningError as e:
		raise HTTPException(status_code=http_status_for(e), detail=str(e))


@router.get("/subjects", response_model=List[SubjectOut])
async def subjects(teacher: Teacher = Depends(get_current_teacher), db: Session = Depends(get_db)):
	try:
		return records.list_subjects(db, teacher.username)
	except ScreeningError as e:
		raise HTTPException(status_code=http_status_for(e), detail=str(e))


@router.get("/subjects/{subject_id}/sessions", response_model=List[RecordOut])
async def subject_sessions(subject_id: str, teacher: Teacher = Depends(get_current_teacher), db: Session = Depends(get_db)):
	if records.get_subject(db, teacher.username, subject_id) is None:
		raise HTTPException(status_code=404, detail="Student not found")
	try:
		return records.list_records(db, teacher.username, subject_id=subject_id)
	except ScreeningError as e:
		raise HTTPException(status_code=http_status_for(e), detail=str(e))


@router.get("/dashboard/stats", response_model=records.DashboardStats)
async def stats(teacher: Teacher = Depends(get_current_teacher), db: Session = Depends(get_db)):
	try:
		return records.dashboard_stats(db, teacher.username)
	except ScreeningError as e:
		raise HTTPException(status_code=http_status_for(e), detail=str(e))


@router.get("/records/{record_id}/report")
async def record_report(record_id: str, teacher: Teacher = Depends(get_current_teacher), db: Session = Depends(get_db)):
	"""Summary PDF for a stored session; per-question detail is not kept in the record."""
	row = records.get_record(db, teacher.username, record_id)
	if row is None:
		raise HTTPException(status_code=404, detail="Session record not found")
	if row.status != records.STATUS_COMPLETED:
		raise HTTPException(status_code=409, detail="Session is not complete yet")
	result = summary_result(
		row.overall_score or 0,
		bool(row.flagged),
		records.stored_analysis(row),
		threshold=settings.flag_threshold_percent,
	)
	subject = db.get(Subject, row.subject_id)
	pdf = build_report_pdf(
		subject.name if subject else "Unknown",
		row.grade,
		row.assessment_type,
		row.created_at.date(),
		[],
		result,
		teacher_name=teacher.full_name,
	)
	return HTTPResponse(content=pdf, media_type="application/pdf")
