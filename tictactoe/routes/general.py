from fastapi import APIRouter
from datetime import datetime, timezone

router = APIRouter()

@router.get("/")
def read_root():
    return {"message": "Tic-tac-toe server is running"}

@router.get("/health")
def health():
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}
