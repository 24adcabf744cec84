import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ..cleanup import run_cleanup
from ..db import get_db
from ..settings import settings

router = APIRouter(prefix="/cron", tags=["cron"])


def _check_cron_secret(authorization: Optional[str]) -> None:
	secret = settings.cron_secret
	if not secret or not authorization or not hmac.compare_digest(authorization, f"Bearer {secret}"):
		raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/cleanup-expired-tokens")
def cleanup_expired_tokens(authorization: Optional[str] = Header(default=None), db: Session = Depends(get_db)):
	_check_cron_secret(authorization)
	counts = run_cleanup(db)
	return {
		"success": True,
		**counts,
		"message": f"Marked {counts['expired_assignments']} assignments as expired",
	}
