"""
Assessment Session
==================

State machine for one screening session:

	in_progress ──(last submission)──> awaiting_ai_analysis ──(AI resolved)──> complete
	     ^                                                                     │
	     └──────────────────────────────(reset)────────────────────────────────┘

The local score is final as soon as the last exercise is answered. The AI
analysis runs as a background task bounded by a timeout; whatever it yields
(real analysis, degraded analysis, or nothing) completes the session. Every
analysis task is tagged with the session generation it was started for, so a
result arriving after a reset is logged and dropped.

Transitions are serialized: a transition requested while another is being
applied is rejected with TransitionInProgress.

A capture belongs to the exercise it was started on. Transcript events are
accepted only while that capture is open: from start_recording until the
final result, a capture error, or the exercise being answered or left. After
stop_recording the capture stays open for the final result, and a submission
without an explicit transcript waits for it.

Going back to a previous exercise moves that exercise's response aside
(exposed as `previous_response`) so `len(responses) == current_index` holds
while in progress; the fresh submission then takes that slot.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel

from .errors import (
	CapabilityUnavailable,
	InputError,
	InvalidTransition,
	PersistenceError,
	TransitionInProgress,
	TRANSPORT_KINDS,
	UPSTREAM_ERROR,
)
from .question_bank import Exercise, clamp_grade, questions_for
from .schemas import AIAnalysis, Response, SessionResult
from .scoring import compute_result, is_correct
from .settings import settings
from .transcription import TranscriptionAdapter, clean_transcript

logger = logging.getLogger(__name__)


IN_PROGRESS = "in_progress"
AWAITING_AI_ANALYSIS = "awaiting_ai_analysis"
COMPLETE = "complete"

# AI analysis status as seen by the UI
AI_NOT_REQUESTED = "not_requested"
AI_DISABLED = "disabled"
AI_PENDING = "pending"
AI_ARRIVED = "arrived"
AI_FAILED = "failed"
AI_TIMED_OUT = "timed_out"


class Analyzer(Protocol):
	async def analyze(self, responses: Sequence[Response], assessment_type: str, grade: int) -> AIAnalysis:
		...


class SessionView(BaseModel):
	"""Read model handed to the UI."""
	session_id: str
	subject_id: str
	assessment_type: str
	grade: int
	phase: str
	current_index: int
	total: int
	exercise: Optional[Exercise] = None
	is_recording: bool
	transcript: str
	transcript_final: bool
	# Recording stopped, final transcript not delivered yet
	transcript_pending: bool = False
	capture_error: Optional[str] = None
	previous_response: Optional[Response] = None
	responses: List[Response]
	local_result_final: bool
	result: Optional[SessionResult] = None
	ai_status: str
	ai_error: Optional[str] = None
	persistence_error: Optional[str] = None


class AssessmentSession:
	def __init__(
		self,
		subject_id: str,
		assessment_type: str,
		grade: int,
		*,
		exercises: Optional[Sequence[Exercise]] = None,
		analyzer: Optional[Analyzer] = None,
		transcriber: Optional[TranscriptionAdapter] = None,
		ai_timeout: Optional[float] = None,
		threshold: Optional[int] = None,
		on_complete: Optional[Callable[["AssessmentSession"], None]] = None,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self.session_id: str = uuid.uuid4().hex
		self.subject_id = subject_id
		self.assessment_type = assessment_type
		self.grade = clamp_grade(grade)
		self.exercises: Tuple[Exercise, ...] = (
			tuple(exercises) if exercises is not None else questions_for(self.grade, assessment_type)
		)
		if not self.exercises:
			raise InputError(f"No exercises available for {assessment_type!r}")
		self.record_id: Optional[str] = None
		self._analyzer = analyzer
		self._transcriber = transcriber
		self._ai_timeout = ai_timeout if ai_timeout is not None else settings.ai_timeout_seconds
		self._threshold = threshold if threshold is not None else settings.flag_threshold_percent
		self._on_complete = on_complete
		self._clock = clock
		self._lock = threading.Lock()
		self._transcript_lock = threading.Lock()
		self._generation = 0
		self._ai_task: Optional[asyncio.Task] = None
		if transcriber is not None:
			transcriber.bind(self._on_transcript, self._on_capture_error)
		self._reset_state()

	def _reset_state(self) -> None:
		self.phase = IN_PROGRESS
		self._responses: List[Response] = []
		self._set_aside: Dict[int, Response] = {}
		self.current_index = 0
		self.is_recording = False
		self.transcript = ""
		self.transcript_final = False
		self.capture_error: Optional[str] = None
		# Exercise index of the open capture
		self._capture: Optional[int] = None
		self._ai_analysis: Optional[AIAnalysis] = None
		self.ai_status = AI_NOT_REQUESTED
		self.ai_error: Optional[str] = None
		self.persistence_error: Optional[str] = None
		self._presented_at = self._clock()

	@contextmanager
	def _transition(self, name: str) -> Iterator[None]:
		if not self._lock.acquire(blocking=False):
			raise TransitionInProgress(f"Cannot {name} while another change is being applied")
		try:
			yield
		finally:
			self._lock.release()

	def _require_in_progress(self, name: str) -> None:
		if self.phase != IN_PROGRESS:
			raise InvalidTransition(f"Cannot {name} once the session is {self.phase}")

	# ------------------------------------------------------------------
	# Read side
	# ------------------------------------------------------------------

	@property
	def responses(self) -> Tuple[Response, ...]:
		return tuple(self._responses)

	@property
	def ai_analysis(self) -> Optional[AIAnalysis]:
		return self._ai_analysis

	@property
	def current_exercise(self) -> Optional[Exercise]:
		if self.phase != IN_PROGRESS:
			return None
		return self.exercises[self.current_index]

	@property
	def previous_response(self) -> Optional[Response]:
		"""Earlier answer to the exercise being re-presented, if any."""
		return self._set_aside.get(self.current_index)

	@property
	def generation(self) -> int:
		return self._generation

	@property
	def result(self) -> SessionResult:
		return compute_result(self._responses, self._ai_analysis, threshold=self._threshold)

	def view(self) -> SessionView:
		local_final = self.phase != IN_PROGRESS
		return SessionView(
			session_id=self.session_id,
			subject_id=self.subject_id,
			assessment_type=self.assessment_type,
			grade=self.grade,
			phase=self.phase,
			current_index=self.current_index,
			total=len(self.exercises),
			exercise=self.current_exercise,
			is_recording=self.is_recording,
			transcript=self.transcript,
			transcript_final=self.transcript_final,
			transcript_pending=self.transcript_pending,
			capture_error=self.capture_error,
			previous_response=self.previous_response,
			responses=list(self._responses),
			local_result_final=local_final,
			result=self.result if local_final else None,
			ai_status=self.ai_status,
			ai_error=self.ai_error,
			persistence_error=self.persistence_error,
		)

	# ------------------------------------------------------------------
	# Recording
	# ------------------------------------------------------------------

	def start_recording(self) -> None:
		with self._transition("start recording"):
			self._require_in_progress("start recording")
			if self.is_recording:
				raise InvalidTransition("Already recording")
			if self._transcriber is None or not self._transcriber.available:
				logger.info("Recording requested without transcription support (session %s)", self.session_id)
				raise CapabilityUnavailable("Speech recognition is not supported on this device.")
			self._clear_capture()
			self._transcriber.start()
			with self._transcript_lock:
				self.capture_error = None
				self._capture = self.current_index
			self.is_recording = True

	def stop_recording(self) -> None:
		"""Stop capturing. May block while the adapter transcribes the recording."""
		with self._transition("stop recording"):
			if not self.is_recording:
				raise InvalidTransition("Not recording")
			self.is_recording = False
		# Outside the transition: the adapter may deliver the final transcript
		# now or later, through _on_transcript
		self._transcriber.stop()

	@property
	def transcript_pending(self) -> bool:
		return self._capture is not None and not self.is_recording

	def _clear_capture(self) -> None:
		with self._transcript_lock:
			self._capture = None
			self.transcript = ""
			self.transcript_final = False

	def _on_transcript(self, text: str, is_final: bool) -> None:
		with self._transcript_lock:
			if self.phase != IN_PROGRESS or self._capture != self.current_index:
				logger.debug("Ignoring transcript outside an open capture (session %s)", self.session_id)
				return
			self.transcript = clean_transcript(text)
			if is_final:
				self.transcript_final = True
				self.is_recording = False
				self._capture = None

	def _on_capture_error(self, reason: str) -> None:
		with self._transcript_lock:
			if self._capture is None:
				return
			logger.warning("Transcription error in session %s: %s", self.session_id, reason)
			self.capture_error = reason
			self.is_recording = False
			self._capture = None

	# ------------------------------------------------------------------
	# Answering
	# ------------------------------------------------------------------

	async def submit_response(self, transcript: Optional[str] = None) -> Response:
		"""Score and record an answer to the current exercise.

		Uses the captured transcript when none is given. On the last exercise
		the session moves to awaiting_ai_analysis and the analysis starts in the
		background; this call does not wait for it.
		"""
		with self._transition("submit a response"):
			self._require_in_progress("submit a response")
			if self.is_recording:
				raise InvalidTransition("Stop recording before submitting")
			if transcript is None and self.transcript_pending:
				raise InvalidTransition("Still waiting for the final transcript")
			text =(transcript if transcript is not None else self.transcript).strip()
			if not text:
				raise InputError("No response recorded. Please record a response first.")
			exercise = self.exercises[self.current_index]
			latency_ms = max(0, int(round((self._clock() - self._presented_at) * 1000)))
			response = Response(
				exercise_id=exercise.id,
				prompt_text_snapshot=exercise.prompt_text,
				expected_answer=exercise.expected_answer,
				kind=exercise.kind,
				transcript=text,
				is_correct=is_correct(text, exercise.expected_answer),
				response_latency_ms=latency_ms,
			)
			self._set_aside.pop(self.current_index, None)
			self._responses.append(response)
			self._clear_capture()
			self.current_index += 1
			if self.current_index < len(self.exercises):
				self._presented_at = self._clock()
			else:
				self._finish_local()
			return response

	def go_to_previous(self) -> Exercise:
		with self._transition("go back"):
			self._require_in_progress("go back")
			if self.current_index == 0:
				raise InvalidTransition("Already at the first exercise")
			if self.is_recording:
				raise InvalidTransition("Stop recording before going back")
			self._clear_capture()
			self.current_index -= 1
			self._set_aside[self.current_index] = self._responses.pop()
			self._presented_at = self._clock()
			return self.exercises[self.current_index]

	def reset(self) -> None:
		"""Start the same assessment over for the same subject."""
		with self._transition("reset"):
			if self.phase != COMPLETE:
				raise InvalidTransition(f"Cannot reset while the session is {self.phase}")
			self._generation += 1
			self._ai_task = None
			self._reset_state()

	# ------------------------------------------------------------------
	# Completion
	# ------------------------------------------------------------------

	def _finish_local(self) -> None:
		self.phase = AWAITING_AI_ANALYSIS
		if self._analyzer is None:
			self.ai_status = AI_DISABLED
			self._complete()
			return
		self.ai_status = AI_PENDING
		self._ai_task = asyncio.get_running_loop().create_task(
			self._run_analysis(self._generation, tuple(self._responses))
		)

	async def _run_analysis(self, generation: int, responses: Tuple[Response, ...]) -> None:
		analysis: Optional[AIAnalysis] = None
		status = AI_ARRIVED
		error: Optional[str] = None
		try:
			analysis = await asyncio.wait_for(
				self._analyzer.analyze(responses, self.assessment_type, self.grade),
				timeout=self._ai_timeout,
			)
		except asyncio.TimeoutError:
			logger.warning("AI analysis timed out after %ss (session %s)", self._ai_timeout, self.session_id)
			status = AI_TIMED_OUT
		except Exception:
			logger.exception("AI analysis failed (session %s)", self.session_id)
			status = AI_FAILED
			error = UPSTREAM_ERROR
		if analysis is not None and analysis.error_kind in TRANSPORT_KINDS:
			# Transport failures fall back to the local flag
			status = AI_FAILED
			error = analysis.error_kind
			analysis = None
		self._apply_analysis(generation, analysis, status, error)

	def _apply_analysis(self, generation: int, analysis: Optional[AIAnalysis], status: str, error: Optional[str]) -> None:
		with self._lock:
			if generation != self._generation or self.phase != AWAITING_AI_ANALYSIS:
				logger.info("Discarding AI analysis for stale generation %s (session %s)", generation, self.session_id)
				return
			self._ai_analysis = analysis
			self.ai_status = status
			self.ai_error = error
			self._complete()

	def _complete(self) -> None:
		self.phase = COMPLETE
		if self._on_complete is None:
			return
		self.persistence_error = None
		try:
			self._on_complete(self)
		except PersistenceError as err:
			logger.error("Could not save session %s: %s", self.session_id, err)
			self.persistence_error = str(err)
		except Exception:
			# The local result stays in memory so the save can be retried
			logger.exception("Completion hook failed for session %s", self.session_id)
			self.persistence_error = "Failed to save session result"

	async def wait_for_analysis(self) -> SessionResult:
		"""Join the background analysis, if one is running."""
		task = self._ai_task
		if task is not None:
			await task
		return self.result
