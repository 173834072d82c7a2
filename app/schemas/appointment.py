# app/schemas/appointment.py

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator
from pydantic.config import ConfigDict

from app.utils.dates import to_utc


class _AppointmentBody(BaseModel):
    # title/start are optional here so a missing field becomes our own 400
    title: Optional[str] = Field(None, examples=["Consulta"])
    start: Optional[datetime] = Field(None, description="ISO8601; naive values are UTC")
    end: Optional[datetime] = None
    paid: bool = False

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return None
        try:
            return to_utc(v)
        except OverflowError:
            raise ValueError("date out of range")

    @field_validator("title")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else None

    @property
    def has_required(self) -> bool:
        return bool(self.title) and self.start is not None


class AppointmentCreate(_AppointmentBody):
    repeat: Optional[str] = Field(None, examples=["weekly"])
    times: Optional[int] = Field(None, examples=[4])


class AppointmentUpdate(_AppointmentBody):
    pass


class AppointmentOut(BaseModel):
    id: int
    title: str
    start: datetime
    end: Optional[datetime] = None
    recurrence_id: Optional[uuid.UUID] = None
    paid: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

    @field_serializer("start", "end", "created_at", "updated_at")
    def _iso_utc(self, v: Optional[datetime]) -> Optional[str]:
        return to_utc(v).isoformat() if v is not None else None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class AppointmentPage(BaseModel):
    data: List[AppointmentOut]
    pagination: Pagination


class AppointmentCreated(BaseModel):
    id: int
    message: str = "Event created successfully"


class SeriesCreated(BaseModel):
    status: str = "ok"
    message: str
    recurrenceId: uuid.UUID
    count: int


class Updated(BaseModel):
    updated: int
    message: str = "Event updated successfully"


class Deleted(BaseModel):
    deleted: int


class Statistics(BaseModel):
    total: int
    pagas: int
    nao_pagas: int
    dias_com_atendimento: int
    duracao_media_horas: Optional[float] = None
