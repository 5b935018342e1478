from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from .. import models, schemas

router = APIRouter(prefix="/api/templates", tags=["templates"])


@router.post("/", response_model=schemas.TestTemplateOut, status_code=status.HTTP_201_CREATED)
def create_template(template: schemas.TestTemplateCreate, db: Session = Depends(get_db)):
    db_template = models.TestTemplate(
        name=template.name,
        description=template.description,
        structure=[section.model_dump(mode="json") for section in template.structure],
    )
    db.add(db_template)
    db.commit()
    db.refresh(db_template)
    return db_template


@router.get("/", response_model=list[schemas.TestTemplateOut])
def list_templates(db: Session = Depends(get_db)):
    return db.query(models.TestTemplate).order_by(models.TestTemplate.name.asc()).all()


@router.get("/{template_id}", response_model=schemas.TestTemplateOut)
def get_template(template_id: UUID, db: Session = Depends(get_db)):
    template = db.get(models.TestTemplate, template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return template
