from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import GoogleAPIError

from swar.errors import CapabilityUnavailable
from swar.transcription import (
	CloudSpeechTranscriptionAdapter,
	PushTranscriptionAdapter,
	UnsupportedTranscriptionAdapter,
	clean_transcript,
)


@pytest.mark.parametrize(
	"raw,cleaned",
	[
		("apple apple", "apple"),
		("the quick the quick brown fox", "the quick brown fox"),
		("  five   hundred  seven ", "five hundred seven"),
		("Cat cat CAT", "Cat"),
		("", ""),
	],
)
def test_clean_transcript(raw, cleaned):
	assert clean_transcript(raw) == cleaned


def _bound(adapter):
	events, errors = [], []
	adapter.bind(lambda text, final: events.append((text, final)), errors.append)
	return events, errors


def _recognize_result(*transcripts):
	results = []
	for text in transcripts:
		alternative = MagicMock()
		alternative.transcript = text
		results.append(MagicMock(alternatives=[alternative]))
	return MagicMock(results=results)


def test_unsupported_adapter_refuses_to_start():
	adapter = UnsupportedTranscriptionAdapter()
	assert adapter.available is False
	with pytest.raises(CapabilityUnavailable):
		adapter.start()


def test_push_adapter_relays_results():
	adapter = PushTranscriptionAdapter()
	events, errors = _bound(adapter)
	adapter.start()
	adapter.push("ele")
	adapter.push("elephant", is_final=True)
	assert events == [("ele", False), ("elephant", True)]
	assert adapter.capturing is False

	adapter.fail("not-allowed")
	assert errors == ["not-allowed"]


class TestCloudSpeechAdapter:
	def test_transcribes_buffered_audio_on_stop(self):
		client = MagicMock()
		client.recognize.return_value = _recognize_result("five thousand", "seven")
		adapter = CloudSpeechTranscriptionAdapter(client=client, language_code="en-GB")
		events, errors = _bound(adapter)

		adapter.start()
		adapter.feed(b"\x00\x01")
		adapter.feed(b"")
		adapter.feed(b"\x02")
		adapter.stop()

		assert events == [("five thousand seven", True)]
		assert errors == []
		kwargs = client.recognize.call_args.kwargs
		assert kwargs["config"].language_code == "en-GB"
		assert kwargs["audio"].content == b"\x00\x01\x02"

	def test_api_failure_reports_error(self):
		client = MagicMock()
		client.recognize.side_effect = GoogleAPIError("quota exceeded")
		adapter = CloudSpeechTranscriptionAdapter(client=client)
		events, errors = _bound(adapter)

		adapter.start()
		adapter.feed(b"\x00")
		adapter.stop()

		assert events == []
		assert len(errors) == 1
		assert "quota exceeded" in errors[0]

	def test_no_audio_reports_error(self):
		client = MagicMock()
		adapter = CloudSpeechTranscriptionAdapter(client=client)
		events, errors = _bound(adapter)

		adapter.start()
		adapter.stop()

		client.recognize.assert_not_called()
		assert errors == ["No audio captured."]

	def test_audio_outside_capture_is_ignored(self):
		client = MagicMock()
		client.recognize.return_value = _recognize_result("apple")
		adapter = CloudSpeechTranscriptionAdapter(client=client)
		_bound(adapter)

		adapter.feed(b"early")
		adapter.start()
		adapter.feed(b"ok")
		adapter.stop()
		adapter.stop()

		assert client.recognize.call_count == 1
		assert client.recognize.call_args.kwargs["audio"].content == b"ok"
