from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from .. import models, schemas

router = APIRouter(prefix="/api/instruments", tags=["instruments"])


@router.post("/", response_model=schemas.InstrumentOut, status_code=status.HTTP_201_CREATED)
def create_instrument(instrument: schemas.InstrumentCreate, db: Session = Depends(get_db)):
    db_instrument = models.Instrument(**instrument.model_dump(), is_active=True)
    db.add(db_instrument)
    db.commit()
    db.refresh(db_instrument)
    return db_instrument


@router.get("/", response_model=list[schemas.InstrumentOut])
def list_instruments(db: Session = Depends(get_db)):
    return db.query(models.Instrument).order_by(models.Instrument.eqp_id.asc()).all()


@router.get("/{instrument_id}", response_model=schemas.InstrumentOut)
def get_instrument(instrument_id: UUID, db: Session = Depends(get_db)):
    instrument = db.get(models.Instrument, instrument_id)
    if not instrument:
        raise HTTPException(status_code=404, detail="Instrument not found")
    return instrument


@router.delete("/{instrument_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_instrument(instrument_id: UUID, db: Session = Depends(get_db)):
    instrument = db.get(models.Instrument, instrument_id)
    if not instrument:
        raise HTTPException(status_code=404, detail="Instrument not found")
    # configurations, occurrences and results cascade
    db.delete(instrument)
    db.commit()
