# legcast/services/buckets.py
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import numpy as np
import structlog

from legcast.config import get_settings
from legcast.routes import chain_key_for_pair
from legcast.services.features import FeatureRecord

logger = structlog.get_logger(__name__)

PAIR = "pair"
CHAIN = "chain"
BUCKET_TYPES = (PAIR, CHAIN)


@dataclass(frozen=True)
class BucketStats:
    total_records: int
    sampled_records: int
    mean_departure_delay: Optional[float] = None
    mean_at_sea_duration: Optional[float] = None
    mean_delay: Optional[float] = None

    def means(self) -> Dict[str, Optional[float]]:
        return {
            "meanDepartureDelay": self.mean_departure_delay,
            "meanAtSeaDuration": self.mean_at_sea_duration,
            "meanDelay": self.mean_delay,
        }


@dataclass
class Bucket:
    bucket_type: str
    bucket_key: str
    records: List[FeatureRecord]
    stats: BucketStats

    @property
    def label(self) -> str:
        return f"{self.bucket_type}|{self.bucket_key}"


def _mean(values: List[float]) -> Optional[float]:
    return float(np.mean(values)) if values else None


def _summarize(records: List[FeatureRecord], total: int) -> BucketStats:
    complete = [r for r in records if r.prev_delay is not None and r.at_sea_duration is not None]
    return BucketStats(
        total_records=total,
        sampled_records=len(records),
        mean_departure_delay=_mean([r.prev_delay for r in complete]),
        mean_at_sea_duration=_mean([r.at_sea_duration for r in complete]),
        mean_delay=_mean([r.prev_delay + r.at_sea_duration for r in complete]),
    )


def _make_bucket(bucket_type: str, key: str, records: List[FeatureRecord], max_samples: int) -> Bucket:
    # most recent first; ties broken by vessel so reruns sample the same rows
    ordered = sorted(records, key=lambda r: (r.scheduled_departure, r.vessel_abbrev), reverse=True)
    sampled = ordered[:max_samples]
    stats = _summarize(sampled, total=len(records))
    logger.debug(
        "buckets.sampled",
        bucket_type=bucket_type,
        bucket_key=key,
        total=stats.total_records,
        sampled=stats.sampled_records,
    )
    return Bucket(bucket_type=bucket_type, bucket_key=key, records=sampled, stats=stats)


def build_buckets(
    records: Iterable[FeatureRecord],
    *,
    max_samples: Optional[int] = None,
    include_chains: bool = True,
) -> List[Bucket]:
    """
    Group records into pair buckets (one per departing->arriving route) and,
    optionally, chain buckets (all routes sharing a leg class).

    Buckets are ordered pair-first, then by sampled size descending, then key.
    """
    max_samples = max_samples or get_settings().MAX_SAMPLES_PER_ROUTE
    by_pair: Dict[str, List[FeatureRecord]] = defaultdict(list)
    by_chain: Dict[str, List[FeatureRecord]] = defaultdict(list)

    for record in records:
        by_pair[record.pair_key].append(record)
        if include_chains:
            chain = chain_key_for_pair(record.pair_key)
            if chain:
                by_chain[chain].append(record)

    buckets = [_make_bucket(PAIR, k, v, max_samples) for k, v in by_pair.items()]
    buckets += [_make_bucket(CHAIN, k, v, max_samples) for k, v in by_chain.items()]
    buckets.sort(key=lambda b: (BUCKET_TYPES.index(b.bucket_type), -b.stats.sampled_records, b.bucket_key))

    logger.info(
        "buckets.built",
        pair_buckets=len(by_pair),
        chain_buckets=len(by_chain),
        total_records=sum(b.stats.total_records for b in buckets if b.bucket_type == PAIR),
    )
    return buckets


__all__ = ["PAIR", "CHAIN", "BUCKET_TYPES", "Bucket", "BucketStats", "build_buckets"]
