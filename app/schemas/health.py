# app/schemas/health.py

from datetime import datetime

from pydantic import BaseModel


class WakeUp(BaseModel):
    status: str = "awake"
    time: datetime
    poolSize: int
    idleCount: int
