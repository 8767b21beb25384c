from __future__ import annotations

from datetime import datetime, timezone

import pytest

from _helpers import make_feature_records
from legcast.services.buckets import CHAIN, PAIR, build_buckets


def _records():
    outbound = make_feature_records(150)
    inbound = make_feature_records(
        120, departing="P52", arriving="BBI", start=datetime(2026, 3, 2, 6, 30, tzinfo=timezone.utc)
    )
    return outbound + inbound


def test_pair_and_chain_buckets():
    buckets = build_buckets(_records())
    labels = [b.label for b in buckets]
    assert labels == ["pair|BBI->P52", "pair|P52->BBI", "chain|chain:medium"]
    chain = buckets[-1]
    assert chain.bucket_type == CHAIN
    assert chain.stats.total_records == 270


def test_chains_can_be_disabled():
    buckets = build_buckets(_records(), include_chains=False)
    assert {b.bucket_type for b in buckets} == {PAIR}


def test_routes_without_prior_have_no_chain():
    recs = make_feature_records(10, departing="XXX", arriving="YYY")
    buckets = build_buckets(recs)
    assert [b.label for b in buckets] == ["pair|XXX->YYY"]


def test_sampling_keeps_most_recent_records():
    recs = make_feature_records(150)
    (bucket,) = build_buckets(recs, max_samples=100, include_chains=False)
    assert bucket.stats.total_records == 150
    assert bucket.stats.sampled_records == 100
    assert len(bucket.records) == 100
    newest = max(r.scheduled_departure for r in recs)
    oldest_kept = min(r.scheduled_departure for r in bucket.records)
    assert max(r.scheduled_departure for r in bucket.records) == newest
    assert oldest_kept == sorted(r.scheduled_departure for r in recs)[50]


def test_bucket_means_from_complete_records():
    recs = make_feature_records(6, delay=lambda i: 1.0)
    (bucket,) = build_buckets(recs, include_chains=False)
    means = bucket.stats.means()
    # prev_delay cycles 0, 1, 2
    assert means["meanDepartureDelay"] == pytest.approx(1.0)
    assert means["meanAtSeaDuration"] == pytest.approx(31.0)
    assert means["meanDelay"] == pytest.approx(32.0)
