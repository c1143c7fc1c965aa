"""
Transcription Adapters
======================

A small start/stop contract around whatever speech-to-text the host offers.
Adapters report through two callbacks bound by the session:

- on_transcript(text, is_final): interim updates (is_final=False) replace
  each other in place; the final update closes the capture.
- on_error(reason): capture failed; recording is over.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, List, Optional

from google.api_core.exceptions import GoogleAPIError
from google.cloud import speech_v1p1beta1 as speech

from .errors import CapabilityUnavailable
from .settings import settings

logger = logging.getLogger(__name__)

TranscriptCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[str], None]


def clean_transcript(text: str) -> str:
	"""Collapse repeated 1–3 word phrases and extra whitespace.

	Recognizers often repeat phrases where interim and final results overlap.
	"""
	s = re.sub(r"\s+", " ", text or "").strip()
	if not s:
		return s
	patterns = [
		(r"\b(\w+\s+\w+\s+\w+)(?:\s+\1\b)+", r"\1"),
		(r"\b(\w+\s+\w+)(?:\s+\1\b)+", r"\1"),
		(r"\b(\w+)(?:\s+\1\b)+", r"\1"),
	]
	for pat, rep in patterns:
		s = re.sub(pat, rep, s, flags=re.IGNORECASE)
	return re.sub(r"\s+", " ", s).strip()


class TranscriptionAdapter:
	available: bool = True

	def __init__(self) -> None:
		self._on_transcript: Optional[TranscriptCallback] = None
		self._on_error: Optional[ErrorCallback] = None
		self.capturing = False

	def bind(self, on_transcript: TranscriptCallback, on_error: ErrorCallback) -> None:
		self._on_transcript = on_transcript
		self._on_error = on_error

	def start(self) -> None:
		self.capturing = True

	def stop(self) -> None:
		self.capturing = False

	def _emit(self, text: str, is_final: bool) -> None:
		if self._on_transcript is not None:
			self._on_transcript(text, is_final)

	def _emit_error(self, reason: str) -> None:
		self.capturing = False
		if self._on_error is not None:
			self._on_error(reason)


class UnsupportedTranscriptionAdapter(TranscriptionAdapter):
	"""Stands in for hosts without any speech recognition."""
	available = False

	def start(self) -> None:
		raise CapabilityUnavailable("Speech recognition is not supported on this device.")


class PushTranscriptionAdapter(TranscriptionAdapter):
	"""Relays results from a client-side recognizer (e.g. the browser speech API)."""

	def push(self, text: str, is_final: bool = False) -> None:
		self._emit(text, is_final)
		if is_final:
			self.capturing = False

	def fail(self, reason: str) -> None:
		self._emit_error(reason)


class CloudSpeechTranscriptionAdapter(TranscriptionAdapter):
	"""Buffers recorded audio and transcribes it with Google Cloud Speech-to-Text on stop."""

	def __init__(self, client: Optional["speech.SpeechClient"] = None, *, language_code: Optional[str] = None) -> None:
		super().__init__()
		self._client = client
		self.language_code = language_code or settings.transcription_language
		self._chunks: List[bytes] = []

	def start(self) -> None:
		if self._client is None:
			try:
				self._client = speech.SpeechClient()
			except Exception as e:
				raise CapabilityUnavailable(f"Cloud speech recognition unavailable: {e}") from e
		self._chunks = []
		super().start()

	def feed(self, audio: bytes) -> None:
		if self.capturing and audio:
			self._chunks.append(audio)

	def stop(self) -> None:
		if not self.capturing:
			return
		super().stop()
		content = b"".join(self._chunks)
		self._chunks = []
		if not content:
			self._emit_error("No audio captured.")
			return
		config = speech.RecognitionConfig(
			language_code=self.language_code,
			model="default",
			profanity_filter=True,
			enable_automatic_punctuation=False,
		)
		try:
			response = self._client.recognize(config=config, audio=speech.RecognitionAudio(content=content))
		except GoogleAPIError as e:
			logger.warning("Cloud speech recognition failed: %s", e)
			self._emit_error(f"Speech recognition API error: {e}")
			return
		text = " ".join(
			result.alternatives[0].transcript for result in response.results if result.alternatives
		)
		self._emit(text, True)
