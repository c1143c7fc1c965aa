from __future__ import annotations
from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, ForeignKey, Integer, Text
from .db import Base


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	full_name = Column(String(128), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Subject(Base):
	"""A child on a teacher's roster."""
	__tablename__ = "subjects"
	id = Column(String(32), primary_key=True)
	teacher_username = Column(String(128), nullable=False, index=True)
	name = Column(String(100), nullable=False)
	age = Column(Integer, nullable=True)
	grade = Column(Integer, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AssessmentRecord(Base):
	"""Stored outcome of one screening session. Written at start and once more on completion."""
	__tablename__ = "assessment_records"
	id = Column(String(32), primary_key=True)
	subject_id = Column(String(32), ForeignKey("subjects.id"), nullable=False, index=True)
	teacher_username = Column(String(128), nullable=False, index=True)
	assessment_type = Column(String(16), nullable=False)
	grade = Column(Integer, nullable=False)
	status = Column(String(16), default="in_progress", nullable=False)
	overall_score = Column(Integer, nullable=True)
	flagged = Column(Boolean, nullable=True)
	ai_analysis_json = Column(Text, nullable=True)  # JSON string snapshot
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	completed_at = Column(DateTime, nullable=True)
