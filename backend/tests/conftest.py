"""Shared fixtures for the screening tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from swar.db import Base
from swar import models  # noqa: F401  (registers tables)
from swar.question_bank import questions_for
from swar.schemas import DyslexiaAnalysis


class FakeClock:
	"""Monotonic clock the tests move by hand."""

	def __init__(self, start: float = 1000.0) -> None:
		self.now = start

	def __call__(self) -> float:
		return self.now

	def advance(self, seconds: float) -> None:
		self.now += seconds


@pytest.fixture
def clock():
	return FakeClock()


@pytest.fixture
def grade3_dyslexia():
	return questions_for(3, "dyslexia")


@pytest.fixture
def flagged_analysis():
	return DyslexiaAnalysis(
		overall_accuracy=55,
		confidence=80,
		detailed_analysis="Frequent b/d reversals and phoneme substitutions.",
		is_flagged=True,
		phoneme_error_rate=18,
		phoneme_confusions=["b/d"],
		letter_reversals=["b", "d"],
	)


@pytest.fixture
def clear_analysis():
	return DyslexiaAnalysis(
		overall_accuracy=92,
		confidence=85,
		detailed_analysis="No consistent error patterns.",
		is_flagged=False,
	)


@pytest.fixture
def analyzer_returning():
	def _make(analysis):
		analyzer = MagicMock()
		analyzer.analyze = AsyncMock(return_value=analysis)
		return analyzer
	return _make


@pytest.fixture
def engine():
	eng = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
		future=True,
	)
	Base.metadata.create_all(bind=eng)
	yield eng
	Base.metadata.drop_all(bind=eng)


@pytest.fixture
def session_factory(engine):
	return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


@pytest.fixture
def db(session_factory):
	session = session_factory()
	try:
		yield session
	finally:
		session.close()


def answers_for(exercises, correct: int):
	"""Transcripts answering the first `correct` exercises right and the rest wrong."""
	transcripts = []
	for i, exercise in enumerate(exercises):
		transcripts.append(exercise.expected_answer if i < correct else "zzz")
	return transcripts
