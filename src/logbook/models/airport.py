"""Airport reference data, refreshed wholesale from the sync server."""
from typing import Optional

from sqlmodel import Field, SQLModel


class Airport(SQLModel, table=True):
    __tablename__ = "airports"

    icao: str = Field(primary_key=True)
    iata: Optional[str] = Field(default=None, index=True)
    name: str = ""
    city: str = ""
    country: str = ""
    elevation: int = 0  # feet
    lat: float
    lon: float
