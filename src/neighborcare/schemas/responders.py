"""Responder request/response schemas."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field, model_validator

from ..models.domain import Coordinate, Responder


def _assume_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps without an offset are taken as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


ObservedAt = Annotated[Optional[datetime], AfterValidator(_assume_utc)]


class CoordinateModel(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    def to_domain(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)


class RegisterResponderRequest(BaseModel):
    is_available: bool = False
    latitude: Optional[float] = Field(None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(None, ge=-180.0, le=180.0)

    @model_validator(mode="after")
    def _both_or_neither(self) -> "RegisterResponderRequest":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        return self

    def coordinate(self) -> Optional[Coordinate]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinate(self.latitude, self.longitude)


class AvailabilityRequest(RegisterResponderRequest):
    observed_at: ObservedAt = Field(
        default=None, description="When the position was measured; defaults to receipt time."
    )


class LocationRequest(CoordinateModel):
    observed_at: ObservedAt = Field(
        default=None, description="When the position was measured; defaults to receipt time."
    )


class ResponderModel(BaseModel):
    id: str
    is_available: bool
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    last_updated: Optional[datetime] = None
    completed_missions: int = 0

    @classmethod
    def from_domain(cls, responder: Responder) -> "ResponderModel":
        return cls(
            id=responder.id,
            is_available=responder.available,
            latitude=responder.coordinate.latitude if responder.coordinate else None,
            longitude=responder.coordinate.longitude if responder.coordinate else None,
            last_updated=responder.last_updated,
            completed_missions=responder.completed_missions,
        )


class LocationResponse(BaseModel):
    responder: ResponderModel
    accepted: bool = Field(..., description="False when the report was older than the stored position.")
    incident_id: Optional[str] = Field(
        default=None, description="Active incident the position was relayed to, if any."
    )
