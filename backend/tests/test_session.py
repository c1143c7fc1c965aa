import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from conftest import answers_for
from swar.analysis import AnalysisClient
from swar.errors import (
	RATE_LIMITED,
	CapabilityUnavailable,
	InputError,
	InvalidTransition,
	PersistenceError,
	TransitionInProgress,
)
from swar.llm_client import GatewayClient
from swar.schemas import AIAnalysis
from swar.session import (
	AI_ARRIVED,
	AI_DISABLED,
	AI_FAILED,
	AI_PENDING,
	AI_TIMED_OUT,
	AWAITING_AI_ANALYSIS,
	COMPLETE,
	IN_PROGRESS,
	AssessmentSession,
)
from swar.transcription import PushTranscriptionAdapter, UnsupportedTranscriptionAdapter


def _session(exercises, clock, **kwargs):
	return AssessmentSession("subject-1", "dyslexia", 3, exercises=exercises, clock=clock, **kwargs)


async def _answer_all(session, transcripts):
	for text in transcripts:
		await session.submit_response(text)


def _slow_analyzer(delay):
	async def analyze(*args, **kwargs):
		await asyncio.sleep(delay)
		return AIAnalysis(overall_accuracy=50, confidence=50, detailed_analysis="late", is_flagged=True)

	analyzer = MagicMock()
	analyzer.analyze = AsyncMock(side_effect=analyze)
	return analyzer


class TestScoringScenarios:
	@pytest.mark.asyncio
	async def test_six_of_eight_is_not_flagged(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock)
		await _answer_all(session, answers_for(grade3_dyslexia, 6))
		assert session.phase == COMPLETE
		assert session.ai_status == AI_DISABLED
		result = session.result
		assert result.local_score_percent == 75
		assert result.local_flag is False
		assert result.effective_flag is False

	@pytest.mark.asyncio
	async def test_five_of_eight_is_flagged(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock)
		await _answer_all(session, answers_for(grade3_dyslexia, 5))
		result = session.result
		assert result.local_score_percent == 63
		assert result.local_flag is True
		assert result.effective_flag is True

	@pytest.mark.asyncio
	async def test_ai_verdict_overrides_local_flag(self, grade3_dyslexia, clock, analyzer_returning, clear_analysis):
		analyzer = analyzer_returning(clear_analysis)
		session = _session(grade3_dyslexia, clock, analyzer=analyzer)
		await _answer_all(session, answers_for(grade3_dyslexia, 2))
		result = await session.wait_for_analysis()

		assert session.phase == COMPLETE
		assert session.ai_status == AI_ARRIVED
		assert result.local_flag is True
		assert result.ai_analysis == clear_analysis
		assert result.effective_flag is False
		analyzer.analyze.assert_awaited_once()
		responses, assessment_type, grade = analyzer.analyze.await_args.args
		assert len(responses) == 8
		assert (assessment_type, grade) == ("dyslexia", 3)


class TestAnalysisLifecycle:
	@pytest.mark.asyncio
	async def test_last_submission_does_not_wait_for_analysis(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock, analyzer=_slow_analyzer(0.05), ai_timeout=5)
		await _answer_all(session, answers_for(grade3_dyslexia, 8))

		assert session.phase == AWAITING_AI_ANALYSIS
		assert session.ai_status == AI_PENDING
		view = session.view()
		assert view.local_result_final is True
		assert view.result.local_score_percent == 100

		await session.wait_for_analysis()
		assert session.phase == COMPLETE

	@pytest.mark.asyncio
	async def test_timeout_completes_with_local_flag(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock, analyzer=_slow_analyzer(1), ai_timeout=0.01)
		await _answer_all(session, answers_for(grade3_dyslexia, 5))
		result = await session.wait_for_analysis()

		assert session.phase == COMPLETE
		assert session.ai_status == AI_TIMED_OUT
		assert result.ai_analysis is None
		assert result.local_flag is True
		assert result.effective_flag is True

	@pytest.mark.asyncio
	async def test_unparsable_output_flags_a_perfect_score(self, grade3_dyslexia, clock):
		def handler(request):
			return httpx.Response(200, json={"choices": [{"message": {"content": "Looks fine to me!"}}]})

		analyzer = AnalysisClient(
			client_factory=lambda: GatewayClient(api_key="test-key", transport=httpx.MockTransport(handler))
		)
		session = _session(grade3_dyslexia, clock, analyzer=analyzer)
		await _answer_all(session, answers_for(grade3_dyslexia, 8))
		result = await session.wait_for_analysis()

		assert session.phase == COMPLETE
		assert result.local_flag is False
		assert result.ai_analysis.is_flagged is True
		assert result.ai_analysis.raw_text == "Looks fine to me!"
		assert result.effective_flag is True

	@pytest.mark.asyncio
	async def test_transport_failure_falls_back_to_local_flag(self, grade3_dyslexia, clock):
		analyzer = AnalysisClient(
			client_factory=lambda: GatewayClient(
				api_key="test-key", transport=httpx.MockTransport(lambda request: httpx.Response(429))
			)
		)
		session = _session(grade3_dyslexia, clock, analyzer=analyzer)
		await _answer_all(session, answers_for(grade3_dyslexia, 8))
		result = await session.wait_for_analysis()

		assert session.phase == COMPLETE
		assert session.ai_status == AI_FAILED
		assert session.ai_error == RATE_LIMITED
		assert result.ai_analysis is None
		assert result.effective_flag is False

	@pytest.mark.asyncio
	async def test_analyzer_crash_still_completes(self, grade3_dyslexia, clock):
		analyzer = MagicMock()
		analyzer.analyze = AsyncMock(side_effect=RuntimeError("boom"))
		session = _session(grade3_dyslexia, clock, analyzer=analyzer)
		await _answer_all(session, answers_for(grade3_dyslexia, 5))
		result = await session.wait_for_analysis()

		assert session.phase == COMPLETE
		assert session.ai_status == AI_FAILED
		assert result.effective_flag is True

	@pytest.mark.asyncio
	async def test_completion_hook_runs_once(self, grade3_dyslexia, clock, analyzer_returning, flagged_analysis):
		saved = []
		session = _session(
			grade3_dyslexia,
			clock,
			analyzer=analyzer_returning(flagged_analysis),
			on_complete=lambda s: saved.append(s.result),
		)
		await _answer_all(session, answers_for(grade3_dyslexia, 8))
		assert saved == []
		await session.wait_for_analysis()
		assert len(saved) == 1
		assert saved[0].effective_flag is True

	@pytest.mark.asyncio
	async def test_persistence_failure_is_reported_not_raised(self, grade3_dyslexia, clock):
		def fail(_session):
			raise PersistenceError("database is locked")

		session = _session(grade3_dyslexia, clock, on_complete=fail)
		await _answer_all(session, answers_for(grade3_dyslexia, 8))
		assert session.phase == COMPLETE
		assert session.persistence_error == "database is locked"
		assert session.result.local_score_percent == 100


class TestAnswering:
	@pytest.mark.asyncio
	async def test_empty_transcript_is_rejected(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock)
		await session.submit_response("apple")
		for blank in ("", "   ", None):
			with pytest.raises(InputError):
				await session.submit_response(blank)
		assert session.current_index == 1
		assert len(session.responses) == 1

	@pytest.mark.asyncio
	async def test_going_back_then_resubmitting_replaces_the_response(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock)
		await session.submit_response("apple")
		await session.submit_response("butterfly")

		session.go_to_previous()
		assert session.current_index == 1
		assert len(session.responses) == 1
		assert session.previous_response.transcript == "butterfly"
		assert session.view().previous_response.transcript == "butterfly"

		await session.submit_response("zzz")
		assert session.current_index == 2
		assert [r.transcript for r in session.responses] == ["apple", "zzz"]
		assert session.responses[1].is_correct is False
		assert session.previous_response is None

	@pytest.mark.asyncio
	async def test_response_count_tracks_index(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock)
		steps = ["apple", "back", "apple", "butterfly", "back", "back", "apple", "bee"]
		for step in steps:
			if step == "back":
				session.go_to_previous()
			else:
				await session.submit_response(step)
			assert len(session.responses) == session.current_index

	def test_cannot_go_back_from_first_exercise(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock)
		with pytest.raises(InvalidTransition):
			session.go_to_previous()

	@pytest.mark.asyncio
	async def test_latency_measured_from_presentation(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock)
		clock.advance(2.5)
		first = await session.submit_response("apple")
		clock.advance(0.75)
		second = await session.submit_response("butterfly")
		assert first.response_latency_ms == 2500
		assert second.response_latency_ms == 750

	@pytest.mark.asyncio
	async def test_response_snapshots_the_exercise(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock)
		response = await session.submit_response("Apple ")
		exercise = grade3_dyslexia[0]
		assert response.exercise_id == exercise.id
		assert response.prompt_text_snapshot == exercise.prompt_text
		assert response.expected_answer == "apple"
		assert response.transcript == "Apple"
		assert response.is_correct is True

	@pytest.mark.asyncio
	async def test_no_submissions_after_completion(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock)
		await _answer_all(session, answers_for(grade3_dyslexia, 8))
		with pytest.raises(InvalidTransition):
			await session.submit_response("apple")
		with pytest.raises(InvalidTransition):
			session.go_to_previous()

	@pytest.mark.asyncio
	async def test_concurrent_transition_is_rejected(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock)
		session._lock.acquire()
		try:
			with pytest.raises(TransitionInProgress):
				await session.submit_response("apple")
		finally:
			session._lock.release()
		assert session.responses == ()
		await session.submit_response("apple")
		assert session.current_index == 1

	def test_unknown_assessment_type_has_no_exercises(self, clock):
		with pytest.raises(InputError):
			AssessmentSession("subject-1", "dysgraphia", 3, clock=clock)

	def test_grade_is_clamped(self, clock):
		session = AssessmentSession("subject-1", "dyscalculia", 15, clock=clock)
		assert session.grade == 12
		assert session.exercises[0].id.startswith("dc4-")


class TestReset:
	@pytest.mark.asyncio
	async def test_reset_only_from_complete(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock)
		await session.submit_response("apple")
		with pytest.raises(InvalidTransition):
			session.reset()

	@pytest.mark.asyncio
	async def test_reset_starts_over(self, grade3_dyslexia, clock):
		session = _session(grade3_dyslexia, clock)
		await _answer_all(session, answers_for(grade3_dyslexia, 3))
		session.reset()
		assert session.phase == IN_PROGRESS
		assert session.generation == 1
		assert session.current_index == 0
		assert session.responses == ()
		assert session.view().result is None

	@pytest.mark.asyncio
	async def test_stale_analysis_is_discarded(self, grade3_dyslexia, clock, flagged_analysis):
		session = _session(grade3_dyslexia, clock)
		await _answer_all(session, answers_for(grade3_dyslexia, 8))
		session.reset()

		session._apply_analysis(0, flagged_analysis, AI_ARRIVED, None)
		assert session.phase == IN_PROGRESS
		assert session.ai_analysis is None
		assert session.ai_status != AI_ARRIVED


class TestRecording:
	def test_recording_without_transcription_is_blocked(self, grade3_dyslexia, clock):
		for transcriber in (None, UnsupportedTranscriptionAdapter()):
			session = _session(grade3_dyslexia, clock, transcriber=transcriber)
			with pytest.raises(CapabilityUnavailable):
				session.start_recording()
			assert session.is_recording is False

	@pytest.mark.asyncio
	async def test_interim_results_replace_and_final_closes(self, grade3_dyslexia, clock):
		adapter = PushTranscriptionAdapter()
		session = _session(grade3_dyslexia, clock, transcriber=adapter)
		session.start_recording()
		assert session.is_recording is True

		adapter.push("ap")
		adapter.push("appl")
		assert session.transcript == "appl"
		assert session.transcript_final is False

		session.stop_recording()
		adapter.push("apple apple", is_final=True)
		assert session.transcript == "apple"
		assert session.transcript_final is True

		adapter.push("pineapple")
		assert session.transcript == "apple"

		response = await session.submit_response()
		assert response.transcript == "apple"
		assert response.is_correct is True
		assert session.transcript == ""

	def test_final_result_ends_recording(self, grade3_dyslexia, clock):
		adapter = PushTranscriptionAdapter()
		session = _session(grade3_dyslexia, clock, transcriber=adapter)
		session.start_recording()
		adapter.push("apple", is_final=True)
		assert session.is_recording is False
		with pytest.raises(InvalidTransition):
			session.stop_recording()

	def test_capture_error_is_surfaced(self, grade3_dyslexia, clock):
		adapter = PushTranscriptionAdapter()
		session = _session(grade3_dyslexia, clock, transcriber=adapter)
		session.start_recording()
		adapter.fail("no-speech")
		assert session.is_recording is False
		assert session.view().capture_error == "no-speech"

	@pytest.mark.asyncio
	async def test_cannot_submit_while_recording(self, grade3_dyslexia, clock):
		adapter = PushTranscriptionAdapter()
		session = _session(grade3_dyslexia, clock, transcriber=adapter)
		session.start_recording()
		adapter.push("apple")
		with pytest.raises(InvalidTransition):
			await session.submit_response()
		assert session.current_index == 0

	def test_recording_again_clears_transcript(self, grade3_dyslexia, clock):
		adapter = PushTranscriptionAdapter()
		session = _session(grade3_dyslexia, clock, transcriber=adapter)
		session.start_recording()
		adapter.push("apricot", is_final=True)
		session.start_recording()
		assert session.transcript == ""
		assert session.transcript_final is False


class TestCaptureOwnership:
	@pytest.mark.asyncio
	async def test_bare_submit_waits_for_final_transcript(self, grade3_dyslexia, clock):
		adapter = PushTranscriptionAdapter()
		session = _session(grade3_dyslexia, clock, transcriber=adapter)
		session.start_recording()
		adapter.push("app")
		session.stop_recording()
		assert session.view().transcript_pending is True

		with pytest.raises(InvalidTransition):
			await session.submit_response()
		assert session.current_index == 0

		adapter.push("apple", is_final=True)
		assert session.transcript_pending is False
		response = await session.submit_response()
		assert response.transcript == "apple"
		assert session.current_index == 1

	@pytest.mark.asyncio
	async def test_late_final_does_not_leak_into_next_exercise(self, grade3_dyslexia, clock):
		adapter = PushTranscriptionAdapter()
		session = _session(grade3_dyslexia, clock, transcriber=adapter)
		session.start_recording()
		adapter.push("app")
		session.stop_recording()
		await session.submit_response("app")

		adapter.push("apple", is_final=True)
		assert session.current_index == 1
		assert session.transcript == ""
		assert session.transcript_final is False
		with pytest.raises(InputError):
			await session.submit_response()
		assert len(session.responses) == 1

	@pytest.mark.asyncio
	async def test_going_back_closes_the_capture(self, grade3_dyslexia, clock):
		adapter = PushTranscriptionAdapter()
		session = _session(grade3_dyslexia, clock, transcriber=adapter)
		await session.submit_response("apple")
		session.start_recording()
		session.stop_recording()
		session.go_to_previous()

		adapter.push("butterfly", is_final=True)
		adapter.fail("aborted")
		assert session.current_index == 0
		assert session.transcript == ""
		assert session.capture_error is None

	def test_stop_does_not_hold_transition_while_transcribing(self, grade3_dyslexia, clock):
		from swar.transcription import CloudSpeechTranscriptionAdapter

		seen = {}
		client = MagicMock()
		adapter = CloudSpeechTranscriptionAdapter(client=client)
		session = _session(grade3_dyslexia, clock, transcriber=adapter)

		def recognize(**kwargs):
			seen["locked"] = session._lock.locked()
			alternative = MagicMock()
			alternative.transcript = "apple"
			return MagicMock(results=[MagicMock(alternatives=[alternative])])

		client.recognize.side_effect = recognize
		session.start_recording()
		adapter.feed(b"\x00\x01")
		session.stop_recording()

		assert seen["locked"] is False
		assert session.transcript == "apple"
		assert session.transcript_final is True


class TestCompletionFailures:
	@pytest.mark.asyncio
	async def test_unexpected_hook_failure_is_reported(self, grade3_dyslexia, clock):
		from sqlalchemy.exc import OperationalError

		def fail(_session):
			raise OperationalError("SELECT", {}, Exception("disk I/O error"))

		session = _session(grade3_dyslexia, clock, on_complete=fail)
		await _answer_all(session, answers_for(grade3_dyslexia, 8))
		assert session.phase == COMPLETE
		assert session.persistence_error == "Failed to save session result"
		assert session.result.local_score_percent == 100

	@pytest.mark.asyncio
	async def test_hook_failure_after_analysis_does_not_escape(self, grade3_dyslexia, clock, analyzer_returning, flagged_analysis):
		session = _session(
			grade3_dyslexia,
			clock,
			analyzer=analyzer_returning(flagged_analysis),
			on_complete=MagicMock(side_effect=RuntimeError("boom")),
		)
		await _answer_all(session, answers_for(grade3_dyslexia, 8))
		result = await session.wait_for_analysis()
		assert session.phase == COMPLETE
		assert session.persistence_error is not None
		assert result.effective_flag is True
