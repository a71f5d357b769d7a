from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.models.service import Service
from telehealth.routes.common import database_unavailable, get_db

router = APIRouter(tags=['services'])


class ServiceResponse(BaseModel):
    id: int
    name: str
    category: str | None = None
    base_price: float | None = None
    duration_minutes: int
    is_active: bool

    class Config:
        from_attributes = True


@router.get('', response_model=list[ServiceResponse])
def list_services(
    category: str | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Service)
        if not include_inactive:
            query = query.filter(Service.is_active.is_(True))
        if category:
            query = query.filter(Service.category == category.strip())
        return query.order_by(Service.category.asc(), Service.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{service_id}', response_model=ServiceResponse)
def get_service(service_id: int, db: Session = Depends(get_db)):
    try:
        service = db.query(Service).filter(Service.id == service_id).first()
        if not service:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Service not found.',
            )
        return service
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
