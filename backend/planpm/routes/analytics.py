from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from .. import schemas
from ..services import analytics
from ..store import SqlScheduleStore, StoreError

router = APIRouter(prefix="/api/maintenance/analytics", tags=["analytics"])


@router.get("/trend", response_model=list[schemas.CompletionTrendPoint])
def completion_trend(months: int = Query(6, ge=1, le=24), db: Session = Depends(get_db)):
    try:
        return analytics.completion_trend(SqlScheduleStore(db), datetime.now(timezone.utc), months=months)
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.get("/counts", response_model=schemas.MonthlyCounts)
def monthly_counts(db: Session = Depends(get_db)):
    try:
        return analytics.monthly_counts(SqlScheduleStore(db), datetime.now(timezone.utc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
