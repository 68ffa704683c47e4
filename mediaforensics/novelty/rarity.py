"""
Rarity scoring for catalogued patterns.

    rarity(o, T) = 100 · (1 - ln(o) / ln(o + T))

`o` is how many times this signature has been seen and `T` the number of
distinct signatures in the catalog. A first sighting (o = 1) is always 100.
For fixed T the score falls as o grows; for fixed o it rises with T, so the
same count reads as rarer inside a larger population.
"""

import math
from typing import Collection

from mediaforensics.config import settings


def calculate_rarity_score(occurrence: int, total_count: int) -> float:
    occurrence = max(1, int(occurrence))
    total_count = max(0, int(total_count))
    if occurrence == 1:
        return 100.0

    score = 100.0 * (1.0 - math.log(occurrence) / math.log(occurrence + total_count))
    return round(min(100.0, max(0.0, score)), 2)


def is_suspicious_pattern(
    rarity_score: float,
    anomaly_type: str,
    high_risk_software: bool = False,
    suspicious_types: Collection[str] = None,
) -> bool:
    """Rare patterns of a suspicious class, or any high-risk software match."""
    if suspicious_types is None:
        suspicious_types = settings.suspicious_anomaly_types
    if high_risk_software:
        return True
    return rarity_score > settings.suspicious_rarity_threshold and anomaly_type in suspicious_types
