"""Records exchanged with the external business data store."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class OperationResult(BaseModel):
    """Outcome of a store operation.

    Expected domain failures ("service not found") come back as
    ``success=False`` with ``error`` set; only infrastructure failures raise.
    """

    success: bool
    entity_id: Optional[str] = None
    error: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, entity_id: Optional[str] = None, **data: Any) -> "OperationResult":
        return cls(success=True, entity_id=entity_id, data=data)

    @classmethod
    def fail(cls, error: str) -> "OperationResult":
        return cls(success=False, error=error)


class ServiceRecord(BaseModel):
    id: str
    name: str
    price: float = 0
    duration_minutes: int = 60
    is_active: bool = True


class StaffRecord(BaseModel):
    id: str
    first_name: str
    last_name: str = ""
    role: str = "staff"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PromotionRecord(BaseModel):
    id: str
    name: str
    discount_type: str = "percentage"
    discount_value: float = 0
    end_date: Optional[str] = None


class HoursRecord(BaseModel):
    day_of_week: int
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    is_closed: bool = False


class FanOutResult(BaseModel):
    """Aggregated result of delivering one item to many recipients."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


# Spanish day names (accents optional) -> day_of_week, Sunday = 0.
DAY_NUMBERS = {
    "domingo": 0,
    "lunes": 1,
    "martes": 2,
    "miércoles": 3,
    "miercoles": 3,
    "jueves": 4,
    "viernes": 5,
    "sábado": 6,
    "sabado": 6,
}

DAY_LABELS = ["Domingo", "Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado"]
