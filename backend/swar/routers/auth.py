from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
import logging
import uuid

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..settings import settings
from ..db import get_db
from ..models import AuthUser, AuthSession

router = APIRouter(prefix="/auth", tags=["auth"])

logging.getLogger('passlib').setLevel(logging.ERROR)
logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class Teacher(BaseModel):
	username: str
	full_name: Optional[str] = None


_seed_users: Dict[str, str] = {}


def _ensure_seed_user() -> None:
	username = settings.seed_username
	password = settings.seed_password_plain
	if username and password and username not in _seed_users:
		# bcrypt only looks at the first 72 bytes
		password_bytes = password.encode('utf-8')[:72]
		_seed_users[username] = pwd_context.hash(password_bytes.decode('utf-8', errors='ignore'))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(plain_password, hashed_password)


def authenticate_teacher(db: Session, username: str, password: str) -> Optional[Teacher]:
	row = db.query(AuthUser).filter(AuthUser.username == username).first()
	if row and verify_password(password, row.password_hash):
		return Teacher(username=username, full_name=row.full_name)
	# Seed account for local development
	_ensure_seed_user()
	hashed = _seed_users.get(username)
	if hashed and verify_password(password, hashed):
		return Teacher(username=username)
	return None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	delta = expires_delta or timedelta(minutes=max(1, settings.access_token_expire_minutes))
	to_encode.update({"exp": datetime.now(timezone.utc) + delta})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	teacher = authenticate_teacher(db, form_data.username, form_data.password)
	if not teacher:
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	session_id = uuid.uuid4().hex
	try:
		db.merge(AuthSession(session_id=session_id, username=teacher.username))
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		logger.exception("Could not persist login session for %s", teacher.username)
		raise HTTPException(status_code=503, detail="Login is temporarily unavailable")
	return Token(access_token=create_access_token({"sub": teacher.username, "jti": session_id}))


def get_current_teacher(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Teacher:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		username: str | None = payload.get("sub")
		jti: str | None = payload.get("jti")
		if username is None or jti is None:
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	try:
		row = db.get(AuthSession, jti)
		if not row or row.username != username:
			raise credentials_exception
		row.last_activity_at = datetime.utcnow()
		db.add(row)
		db.commit()
	except HTTPException:
		raise
	except SQLAlchemyError:
		# On DB errors, fail closed
		db.rollback()
		raise credentials_exception
	user_row = db.get(AuthUser, username)
	return Teacher(username=username, full_name=user_row.full_name if user_row else None)


@router.get("/me", response_model=Teacher)
async def me(teacher: Teacher = Depends(get_current_teacher)):
	return teacher


class RegisterRequest(BaseModel):
	username: str
	password: str
	full_name: Optional[str] = None


@router.post("/register", status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	username = (req.username or "").strip()
	password = req.password or ""
	if not username or not password:
		raise HTTPException(status_code=400, detail="username and password are required")
	if len(username) < 3 or len(username) > 128:
		raise HTTPException(status_code=400, detail="username must be 3-128 characters")
	existing = db.query(AuthUser).filter(AuthUser.username == username).first()
	if existing:
		raise HTTPException(status_code=409, detail="username already exists")
	full_name = (req.full_name or "").strip() or None
	db.add(AuthUser(username=username, password_hash=pwd_context.hash(password), full_name=full_name))
	try:
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		raise HTTPException(status_code=503, detail="Could not create account")
	return {"ok": True}
