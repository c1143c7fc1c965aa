from __future__ import annotations
from typing import Optional


class ScreeningError(Exception):
	"""Base class for errors raised by the screening core."""


class InputError(ScreeningError):
	"""Bad user input (empty transcript, invalid roster entry). No state was changed."""


class CapabilityUnavailable(ScreeningError):
	"""The host has no transcription capability; recording is blocked."""


class InvalidTransition(ScreeningError):
	"""The requested transition is not valid in the session's current phase."""


class TransitionInProgress(ScreeningError):
	"""Another transition is being applied to the same session."""


class PersistenceError(ScreeningError):
	"""Writing to or reading from the record store failed."""


# Transport error kinds surfaced to the UI
RATE_LIMITED = "rate_limited"
PAYMENT_REQUIRED = "payment_required"
UPSTREAM_ERROR = "upstream_error"
SCHEMA_ERROR = "schema_error"

TRANSPORT_KINDS = (RATE_LIMITED, PAYMENT_REQUIRED, UPSTREAM_ERROR)


class TransportError(ScreeningError):
	def __init__(self, kind: str, message: str = "", status_code: Optional[int] = None) -> None:
		super().__init__(message or kind)
		self.kind = kind
		self.status_code = status_code

	@classmethod
	def from_status(cls, status_code: int, body: str = "") -> "TransportError":
		if status_code == 429:
			return cls(RATE_LIMITED, "Rate limits exceeded, please try again later.", status_code)
		if status_code == 402:
			return cls(PAYMENT_REQUIRED, "Payment required, please add funds to the AI workspace.", status_code)
		return cls(UPSTREAM_ERROR, f"AI gateway error: {status_code} {body[:200]}".strip(), status_code)


class SchemaError(ScreeningError):
	def __init__(self, message: str, raw_text: str = "") -> None:
		super().__init__(message)
		self.raw_text = raw_text


_HTTP_STATUS = {
	InputError: 400,
	InvalidTransition: 409,
	TransitionInProgress: 409,
	CapabilityUnavailable: 422,
	PersistenceError: 503,
	TransportError: 502,
	SchemaError: 502,
}


def http_status_for(err: ScreeningError) -> int:
	for cls in type(err).__mro__:
		if cls in _HTTP_STATUS:
			return _HTTP_STATUS[cls]
	return 500
