"""
Sales-side value types handed to the engines by the transaction and
restaurant metadata sources.
"""

from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from covercast.utils.geo import region_for_state


class TransactionItem(BaseModel):
    """One line of a check."""
    
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)
    
    name: str = Field(..., min_length=1)
    category: str = Field(default="uncategorized")
    quantity: float = Field(default=1, ge=0)
    
    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v):
        return v or "uncategorized"
    
    @property
    def key(self) -> str:
        """Case-insensitive identity used for item tallies."""
        return f"{self.category.lower()}:{self.name.lower()}"


class TransactionRecord(BaseModel):
    """A closed check."""
    
    model_config = ConfigDict(frozen=True)
    
    transaction_date: datetime
    total_amount: float
    items: Tuple[TransactionItem, ...] = ()


class RestaurantProfile(BaseModel):
    """Restaurant metadata relevant to correlation discovery."""
    
    model_config = ConfigDict(frozen=True)
    
    id: int
    name: str = ""
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    state: Optional[str] = None
    cuisine_type: Optional[str] = None
    timezone: Optional[str] = None
    
    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None
    
    @property
    def region(self) -> Optional[str]:
        return region_for_state(self.state)
