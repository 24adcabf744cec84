from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import logging
import uuid

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..models import Assignment, AuthSession, User, ROLE_ADMIN, ROLE_STUDENT
from ..tokens import is_token_active

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger("ielts.auth")
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")



class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"
	role: str


class CurrentUser(BaseModel):
	id: str
	email: str
	name: Optional[str] = None
	role: str
	session_id: str


class StudentTokenRequest(BaseModel):
	token: str


def _bcrypt_safe(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	password_bytes = (password or "").encode('utf-8')
	if len(password_bytes) > 72:
		password_bytes = password_bytes[:72]
	return password_bytes.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_bcrypt_safe(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(_bcrypt_safe(plain_password), hashed_password)


def ensure_seed_admin(db: Session) -> Optional[User]:
	email = settings.seed_admin_email
	password = settings.seed_admin_password
	if not email or not password:
		return None
	email = email.strip().lower()
	row = db.query(User).filter(User.email == email).first()
	if row is None:
		row = User(email=email, name="Administrator", password_hash=hash_password(password), role=ROLE_ADMIN)
		db.add(row)
		db.commit()
		logger.info("Seed admin created: %s", email)
	return row


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
	row = db.query(User).filter(User.email == (email or "").strip().lower()).first()
	if row and verify_password(password, row.password_hash):
		return row
	return None


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		delta = timedelta(minutes=minutes) if minutes > 0 else timedelta(days=30)
	return datetime.now(timezone.utc) + delta


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	to_encode.update({"exp": _resolve_expiry(expires_delta)})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _open_session(db: Session, user: User, extra: Optional[dict] = None) -> Token:
	session_id = uuid.uuid4().hex
	claims = {"sub": user.id, "role": user.role, "jti": session_id}
	claims.update(extra or {})
	access_token = create_access_token(claims)
	db.add(AuthSession(session_id=session_id, user_id=user.id))
	db.commit()
	return Token(access_token=access_token, role=user.role)


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = authenticate_user(db, form_data.username, form_data.password)
	if not user:
		raise HTTPException(status_code=401, detail="Incorrect email or password")
	logger.info("Login: user=%s role=%s", user.id, user.role)
	return _open_session(db, user)


@router.post("/student/token", response_model=Token)
async def student_login(req: StudentTokenRequest, db: Session = Depends(get_db)):
	assignment = db.query(Assignment).filter(Assignment.access_token == (req.token or "").strip()).first()
	if not assignment:
		raise HTTPException(status_code=404, detail="Invalid token")
	if not is_token_active(assignment.valid_from, assignment.valid_until):
		raise HTTPException(status_code=403, detail="Token is not valid at this time")
	student = db.get(User, assignment.student_id)
	if not student or student.role != ROLE_STUDENT:
		raise HTTPException(status_code=404, detail="Invalid token")
	logger.info("Student login via access token: user=%s assignment=%s", student.id, assignment.id)
	return _open_session(db, student, {"assignment_id": assignment.id})


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> CurrentUser:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		user_id: str | None = payload.get("sub")
		jti: str | None = payload.get("jti")
		if user_id is None or jti is None:
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	# The session row must still exist; logout and cleanup revoke tokens by deleting it
	row = db.get(AuthSession, jti)
	if not row or row.user_id != user_id:
		raise credentials_exception
	user = db.get(User, user_id)
	if not user:
		raise credentials_exception
	row.last_activity_at = datetime.utcnow()
	db.commit()
	return CurrentUser(id=user.id, email=user.email, name=user.name, role=user.role, session_id=jti)


def require_roles(*roles: str) -> Callable[..., CurrentUser]:
	def _dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
		if user.role not in roles:
			raise HTTPException(status_code=403, detail="Forbidden")
		return user
	return _dependency


@router.get("/me", response_model=CurrentUser)
async def me(user: CurrentUser = Depends(get_current_user)):
	return user


@router.post("/logout")
async def logout(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
	row = db.get(AuthSession, user.session_id)
	if row:
		db.delete(row)
		db.commit()
	return {"ok": True}
