from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter(tags=["status"])


@router.get("/health")
def health():
    return {"status": "ok", "utc": datetime.now(timezone.utc).isoformat()}
