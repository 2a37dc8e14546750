"""Per-venue classification results and the batch aggregate."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Outcome(str, Enum):
    """Terminal state of a single venue validation."""

    VALIDATED = "validated"
    INVALID_MISSING_COORDINATES = "invalid-missing-coordinates"
    INVALID_TOO_FAR = "invalid-too-far"
    FAILED = "failed"

    @property
    def bucket(self) -> str:
        """Name of the aggregate counter this outcome increments."""
        if self is Outcome.VALIDATED:
            return "validated"
        if self is Outcome.FAILED:
            return "failed"
        return "invalid"


class ReasonCode(str, Enum):
    WITHIN_THRESHOLD = "within_threshold"
    MISSING_COORDINATES = "missing_coordinates"
    INVALID_COORDINATES = "invalid_coordinates"
    TOO_FAR = "too_far"
    NO_CITY_FOUND = "no_city_found"
    VENUE_NOT_FOUND = "venue_not_found"
    TRANSPORT_ERROR = "transport_error"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass(frozen=True)
class VenueValidationDetail:
    venue_id: str
    outcome: Outcome
    reason_code: ReasonCode
    reason: str
    venue_name: Optional[str] = None
    city_id: Optional[str] = None
    city_name: Optional[str] = None
    distance_km: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "venueId": self.venue_id,
            "venueName": self.venue_name,
            "status": self.outcome.value,
            "reasonCode": self.reason_code.value,
            "reason": self.reason,
            "cityId": self.city_id,
            "cityName": self.city_name,
            "distanceKm": self.distance_km,
        }
        return {key: value for key, value in payload.items() if value is not None}


@dataclass
class BatchReport:
    """Aggregate of one `validate` call, details in input order."""

    details: List[VenueValidationDetail] = field(default_factory=list)

    def add(self, detail: VenueValidationDetail) -> None:
        self.details.append(detail)

    def _count(self, bucket: str) -> int:
        return sum(1 for detail in self.details if detail.outcome.bucket == bucket)

    @property
    def validated(self) -> int:
        return self._count("validated")

    @property
    def invalid(self) -> int:
        return self._count("invalid")

    @property
    def failed(self) -> int:
        return self._count("failed")

    def as_dict(self) -> Dict[str, Any]:
        return {
            "validated": self.validated,
            "invalid": self.invalid,
            "failed": self.failed,
            "details": [detail.as_dict() for detail in self.details],
        }
