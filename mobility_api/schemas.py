from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class FilterSelectionModel(BaseModel):
    canton: str = "All"
    distance_type: str = "euclidean"
    mode: str = "all"
    purpose: str = "all"
    gender: str = "male"
    income: str = "1"
    age: str = "25-44"
    transit_stop: Optional[str] = None
    transit_line: Optional[str] = None


class TransitLinesRequest(BaseModel):
    canton: str
    transit_stop: str
