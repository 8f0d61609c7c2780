"""
Daily aggregation of transactions.

Groups checks by restaurant-local calendar date. Days without sales are
absent from the result rather than synthesized as zero-revenue rows.
"""

from datetime import date
from typing import Dict, Iterable, List

import pytz

from covercast.domain.aggregates import DailyAggregate
from covercast.domain.transactions import TransactionRecord
from covercast.utils.datetime import local_date


def aggregate_daily(
    transactions: Iterable[TransactionRecord],
    tz: pytz.BaseTzInfo = pytz.UTC,
) -> List[DailyAggregate]:
    """One aggregate per distinct local date, in date order."""
    days: Dict[date, DailyAggregate] = {}
    
    for txn in transactions:
        day = local_date(txn.transaction_date, tz)
        aggregate = days.get(day)
        if aggregate is None:
            aggregate = days[day] = DailyAggregate(date=day)
        
        aggregate.revenue += txn.total_amount
        aggregate.transaction_count += 1
        for item in txn.items:
            category = aggregate.item_counts.setdefault(item.category, {})
            category[item.name] = category.get(item.name, 0) + item.quantity
    
    return [days[d] for d in sorted(days)]
