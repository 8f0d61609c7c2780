"""Geographic helpers: great-circle distance and US region lookup."""

import math
from typing import Optional

EARTH_RADIUS_MILES = 3959.0

# US Census Bureau regions, keyed by USPS state code.
STATE_REGIONS = {
    # Northeast
    "CT": "northeast", "ME": "northeast", "MA": "northeast", "NH": "northeast",
    "RI": "northeast", "VT": "northeast", "NJ": "northeast", "NY": "northeast",
    "PA": "northeast",
    # Midwest
    "IL": "midwest", "IN": "midwest", "MI": "midwest", "OH": "midwest",
    "WI": "midwest", "IA": "midwest", "KS": "midwest", "MN": "midwest",
    "MO": "midwest", "NE": "midwest", "ND": "midwest", "SD": "midwest",
    # South
    "DE": "south", "DC": "south", "FL": "south", "GA": "south", "MD": "south",
    "NC": "south", "SC": "south", "VA": "south", "WV": "south", "AL": "south",
    "KY": "south", "MS": "south", "TN": "south", "AR": "south", "LA": "south",
    "OK": "south", "TX": "south",
    # West
    "AZ": "west", "CO": "west", "ID": "west", "MT": "west", "NV": "west",
    "NM": "west", "UT": "west", "WY": "west", "AK": "west", "CA": "west",
    "HI": "west", "OR": "west", "WA": "west",
}


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates in miles."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def region_for_state(state: Optional[str]) -> Optional[str]:
    """Map a state code (or full lower-case region name) to its census region."""
    if not state:
        return None
    code = state.strip().upper()
    if code in STATE_REGIONS:
        return STATE_REGIONS[code]
    lowered = state.strip().lower()
    if lowered in {"northeast", "midwest", "south", "west"}:
        return lowered
    return None
