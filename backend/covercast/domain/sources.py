"""
Contracts for the data the engines consume from the surrounding system.

The SQLAlchemy repositories in ``covercast.db.repositories`` implement these;
tests and other hosts can supply their own.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from covercast.domain.transactions import RestaurantProfile, TransactionRecord


class TransactionSource(ABC):
    """Yields a restaurant's closed checks."""
    
    @abstractmethod
    def get_transactions(
        self, restaurant_id: int, start: datetime, end: datetime
    ) -> List[TransactionRecord]:
        """Transactions with ``start <= transaction_date < end``, oldest first."""


class RestaurantSource(ABC):
    """Yields restaurant metadata."""
    
    @abstractmethod
    def get_restaurant(self, restaurant_id: int) -> Optional[RestaurantProfile]:
        """Profile for ``restaurant_id``, or None when unknown."""
    
    @abstractmethod
    def list_active_restaurant_ids(self) -> List[int]:
        """Restaurants eligible for the nightly discovery job."""
