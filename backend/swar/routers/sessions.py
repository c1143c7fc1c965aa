"""
Screening Session API
=====================

Drives an AssessmentSession over HTTP. Sessions live in process memory for
the duration of the assessment; the record store sees one row per session,
created at start and written once more when the session completes.

Transcription modes:
- client: the browser runs speech recognition and pushes interim/final
  results to /transcript (default)
- server: the browser uploads audio chunks to /audio and the server
  transcribes them with Google Cloud Speech-to-Text when recording stops
- none: recording is unavailable; transcripts are typed and submitted directly
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from datetime import date
from typing import Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response as HTTPResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import records
from ..analysis import AnalysisClient
from ..db import SessionLocal, get_db
from ..errors import ScreeningError, http_status_for
from ..question_bank import AssessmentType
from ..reporting import build_report_pdf
from ..session import COMPLETE, IN_PROGRESS, AssessmentSession, SessionView
from ..settings import settings
from ..transcription import (
	CloudSpeechTranscriptionAdapter,
	PushTranscriptionAdapter,
	TranscriptionAdapter,
	UnsupportedTranscriptionAdapter,
)
from .auth import Teacher, get_current_teacher

router = APIRouter(prefix="/sessions", tags=["sessions"])
logger = logging.getLogger(__name__)


class _ActiveSession:
	def __init__(self, session: AssessmentSession, teacher_username: str, subject_name: str, transcriber: TranscriptionAdapter) -> None:
		self.session = session
		self.teacher_username = teacher_username
		self.subject_name = subject_name
		self.transcriber = transcriber


_sessions: Dict[str, _ActiveSession] = {}


# ============================================================================
# REQUEST MODELS
# ============================================================================

class StartRequest(BaseModel):
	subject_id: str
	assessment_type: AssessmentType
	# Defaults to the student's roster grade
	grade: Optional[int] = None
	transcription: Literal["client", "server", "none"] = "client"


class TranscriptEvent(BaseModel):
	text: str = ""
	is_final: bool = False
	# Set when the client-side recognizer failed
	error: Optional[str] = None


class AudioChunk(BaseModel):
	audio_base64: str


class SubmitRequest(BaseModel):
	# Falls back to the captured transcript
	transcript: Optional[str] = None


# ============================================================================
# HELPERS
# ============================================================================

def _make_transcriber(mode: str) -> TranscriptionAdapter:
	if mode == "server":
		return CloudSpeechTranscriptionAdapter()
	if mode == "none":
		return UnsupportedTranscriptionAdapter()
	return PushTranscriptionAdapter()


def _save_completion(session: AssessmentSession) -> None:
	if session.record_id is None:
		return
	db = SessionLocal()
	try:
		records.complete_record(db, session.record_id, session.result)
	finally:
		db.close()


def _get(session_id: str, teacher: Teacher) -> _ActiveSession:
	active = _sessions.get(session_id)
	if not active or active.teacher_username != teacher.username:
		raise HTTPException(status_code=404, detail="Session not found or expired")
	return active


def _http_error(err: ScreeningError) -> HTTPException:
	return HTTPException(status_code=http_status_for(err), detail=str(err))


# ============================================================================
# API ENDPOINTS
# ============================================================================

@router.post("/start", response_model=SessionView)
async def start(req: StartRequest, teacher: Teacher = Depends(get_current_teacher), db: Session = Depends(get_db)):
	subject = records.get_subject(db, teacher.username, req.subject_id)
	if subject is None:
		raise HTTPException(status_code=404, detail="Student not found")
	grade = req.grade if req.grade is not None else subject.grade
	transcriber = _make_transcriber(req.transcription)
	analyzer = AnalysisClient() if settings.ai_analysis_enabled else None
	try:
		session = AssessmentSession(
			subject.id,
			req.assessment_type,
			grade,
			analyzer=analyzer,
			transcriber=transcriber,
			on_complete=_save_completion,
		)
		session.record_id = records.create_record(db, teacher.username, subject.id, req.assessment_type, session.grade).id
	except ScreeningError as e:
		raise _http_error(e)
	_sessions[session.session_id] = _ActiveSession(session, teacher.username, subject.name, transcriber)
	return session.view()


@router.get("/{session_id}", response_model=SessionView)
async def get_session(session_id: str, teacher: Teacher = Depends(get_current_teacher)):
	return _get(session_id, teacher).session.view()


@router.post("/{session_id}/recording/start", response_model=SessionView)
async def start_recording(session_id: str, teacher: Teacher = Depends(get_current_teacher)):
	session = _get(session_id, teacher).session
	try:
		session.start_recording()
	except ScreeningError as e:
		raise _http_error(e)
	return session.view()


@router.post("/{session_id}/recording/stop", response_model=SessionView)
async def stop_recording(session_id: str, teacher: Teacher = Depends(get_current_teacher)):
	session = _get(session_id, teacher).session
	try:
		# Server-side transcription runs the blocking recognize call here
		await asyncio.to_thread(session.stop_recording)
	except ScreeningError as e:
		raise _http_error(e)
	return session.view()


@router.post("/{session_id}/transcript", response_model=SessionView)
async def push_transcript(session_id: str, event: TranscriptEvent, teacher: Teacher = Depends(get_current_teacher)):
	active = _get(session_id, teacher)
	if not isinstance(active.transcriber, PushTranscriptionAdapter):
		raise HTTPException(status_code=400, detail="Session is not using client-side transcription")
	if event.error:
		active.transcriber.fail(event.error)
	else:
		active.transcriber.push(event.text, event.is_final)
	return active.session.view()


@router.post("/{session_id}/audio", response_model=SessionView)
async def push_audio(session_id: str, chunk: AudioChunk, teacher: Teacher = Depends(get_current_teacher)):
	active = _get(session_id, teacher)
	if not isinstance(active.transcriber, CloudSpeechTranscriptionAdapter):
		raise HTTPException(status_code=400, detail="Session is not using server-side transcription")
	try:
		audio = base64.b64decode(chunk.audio_base64, validate=True)
	except (binascii.Error, ValueError):
		raise HTTPException(status_code=400, detail="audio_base64 is not valid base64")
	active.transcriber.feed(audio)
	return active.session.view()


@router.post("/{session_id}/submit", response_model=SessionView)
async def submit(session_id: str, req: SubmitRequest, teacher: Teacher = Depends(get_current_teacher)):
	session = _get(session_id, teacher).session
	try:
		await session.submit_response(req.transcript)
	except ScreeningError as e:
		raise _http_error(e)
	return session.view()


@router.post("/{session_id}/previous", response_model=SessionView)
async def previous(session_id: str, teacher: Teacher = Depends(get_current_teacher)):
	session = _get(session_id, teacher).session
	try:
		session.go_to_previous()
	except ScreeningError as e:
		raise _http_error(e)
	return session.view()


@router.post("/{session_id}/reset", response_model=SessionView)
async def reset(session_id: str, teacher: Teacher = Depends(get_current_teacher), db: Session = Depends(get_db)):
	"""Retry the assessment; the retry gets its own session record."""
	session = _get(session_id, teacher).session
	try:
		session.reset()
		session.record_id = records.create_record(db, teacher.username, session.subject_id, session.assessment_type, session.grade).id
	except ScreeningError as e:
		raise _http_error(e)
	return session.view()


@router.post("/{session_id}/save", response_model=SessionView)
async def save(session_id: str, teacher: Teacher = Depends(get_current_teacher)):
	"""Retry the completion write after a storage failure."""
	session = _get(session_id, teacher).session
	if session.phase != COMPLETE:
		raise HTTPException(status_code=409, detail="Session is not complete yet")
	if session.persistence_error is None:
		return session.view()
	try:
		_save_completion(session)
	except ScreeningError as e:
		raise _http_error(e)
	session.persistence_error = None
	return session.view()


@router.get("/{session_id}/report")
async def report(session_id: str, teacher: Teacher = Depends(get_current_teacher)):
	active = _get(session_id, teacher)
	session = active.session
	if session.phase == IN_PROGRESS:
		raise HTTPException(status_code=409, detail="Session is still in progress")
	pdf = build_report_pdf(
		active.subject_name,
		session.grade,
		session.assessment_type,
		date.today(),
		session.responses,
		session.result,
		teacher_name=teacher.full_name,
	)
	return HTTPResponse(content=pdf, media_type="application/pdf")
