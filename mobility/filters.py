from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


CANTONS = [
    "Aargau",
    "AppenzellAusserrhoden",
    "AppenzellInnerrhoden",
    "Basel-Landschaft",
    "Basel-Stadt",
    "Bern",
    "Fribourg",
    "Geneve",
    "Glarus",
    "Graubunden",
    "Jura",
    "Luzern",
    "Neuchatel",
    "Nidwalden",
    "Obwalden",
    "Schaffhausen",
    "Schwyz",
    "Solothurn",
    "StGallen",
    "Ticino",
    "Thurgau",
    "Uri",
    "Valais",
    "Vaud",
    "Zug",
    "Zurich",
]
ALL = "All"

DISTANCE_TYPES = ("euclidean", "network")

MODES = {
    "all": "All Modes",
    "bike": "Bike",
    "car": "Car",
    "car_passenger": "Car Passenger",
    "pt": "Public Transport",
    "walk": "Walk",
}

PURPOSES = {
    "all": "All Purposes",
    "education": "Education",
    "home": "Home",
    "leisure": "Leisure",
    "other": "Other",
    "shop": "Shop",
    "work": "Work",
}

GENDERS = ("male", "female")

DEFAULT_INCOME = "1"
DEFAULT_AGE = "25-44"


@dataclass(frozen=True)
class FilterSelection:
    canton: str = ALL
    distance_type: str = "euclidean"
    mode: str = "all"
    purpose: str = "all"
    gender: str = "male"
    income: str = DEFAULT_INCOME
    age: str = DEFAULT_AGE
    transit_stop: Optional[str] = None
    transit_line: Optional[str] = None

    @property
    def has_canton(self) -> bool:
        return bool(self.canton) and self.canton != ALL

    def selected_for(self, kind: str) -> str:
        """Return the mode or purpose selection, depending on `kind`."""
        return self.mode if kind == "mode" else self.purpose


def _clean_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _choice(value: object, options, default: str) -> str:
    s = _clean_str(value)
    return s if s in options else default


def normalize_filters(raw: Optional[dict]) -> FilterSelection:
    raw = raw or {}

    canton = _clean_str(raw.get("canton"))
    if canton not in CANTONS:
        canton = ALL

    distance_type = _choice(raw.get("distance_type"), DISTANCE_TYPES, "euclidean")
    mode = _choice(raw.get("mode"), MODES, "all")
    purpose = _choice(raw.get("purpose"), PURPOSES, "all")
    gender = _choice(_clean_str(raw.get("gender")).lower(), GENDERS, "male")
    income = _clean_str(raw.get("income")) or DEFAULT_INCOME
    age = _clean_str(raw.get("age")) or DEFAULT_AGE

    transit_stop = _clean_str(raw.get("transit_stop")) or None
    transit_line = _clean_str(raw.get("transit_line")) or None
    # A stop belongs to a canton and a line to a stop.
    if canton == ALL:
        transit_stop = None
    if transit_stop is None:
        transit_line = None

    return FilterSelection(
        canton=canton,
        distance_type=distance_type,
        mode=mode,
        purpose=purpose,
        gender=gender,
        income=income,
        age=age,
        transit_stop=transit_stop,
        transit_line=transit_line,
    )
