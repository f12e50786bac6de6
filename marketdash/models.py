from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

Point = Tuple[str, float]


def _points_from_json(raw: Any) -> List[Point]:
    return [(str(d), float(v)) for d, v in raw or []]


@dataclass
class RegionSeries:
    region_id: str
    city: str
    state: str
    zip_code: Optional[str] = None
    points: List[Point] = field(default_factory=list)

    @property
    def canonical_name(self) -> str:
        return f"{self.city}, {self.state}"


@dataclass
class MergedRegionStats:
    region_id: str
    city: str
    state: str
    zip_code: Optional[str]
    points: List[Point]
    current_value: float
    percent_change: float
    min_value: float
    max_value: float
    rental_points: Optional[List[Point]] = None
    current_rent: Optional[float] = None
    rent_change: Optional[float] = None

    @property
    def canonical_name(self) -> str:
        return f"{self.city}, {self.state}"

    @property
    def has_rentals(self) -> bool:
        return bool(self.rental_points)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "region_id": self.region_id,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "points": [[d, v] for d, v in self.points],
            "current_value": self.current_value,
            "percent_change": self.percent_change,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "rental_points": None if self.rental_points is None else [[d, v] for d, v in self.rental_points],
            "current_rent": self.current_rent,
            "rent_change": self.rent_change,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MergedRegionStats":
        rental_raw = data.get("rental_points")
        return cls(
            region_id=str(data["region_id"]),
            city=data["city"],
            state=data["state"],
            zip_code=data.get("zip_code"),
            points=_points_from_json(data.get("points")),
            current_value=float(data["current_value"]),
            percent_change=float(data["percent_change"]),
            min_value=float(data["min_value"]),
            max_value=float(data["max_value"]),
            rental_points=None if rental_raw is None else _points_from_json(rental_raw),
            current_rent=data.get("current_rent"),
            rent_change=data.get("rent_change"),
        )


@dataclass(frozen=True)
class RegionDescriptor:
    """One entry of the region directory listing (markets-index.json)."""

    id: str
    name: str
    city: str
    state: str
    zip_code: Optional[str] = None
    market_key: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegionDescriptor":
        zip_code = data.get("zipCode", data.get("zip_code"))
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or f"{data['city']}, {data['state']}"),
            city=str(data["city"]),
            state=str(data["state"]),
            zip_code=str(zip_code) if zip_code else None,
            market_key=data.get("marketKey", data.get("market_key")),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "name": self.name, "city": self.city, "state": self.state}
        if self.zip_code:
            out["zipCode"] = self.zip_code
        if self.market_key:
            out["marketKey"] = self.market_key
        return out
