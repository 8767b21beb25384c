from __future__ import annotations

from collections import defaultdict, deque
from typing import Deque, Dict, List

import numpy as np
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)

router = APIRouter()

REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["path", "method", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency",
    ["path", "method"],
)
MODEL_LOOKUPS = Counter(
    "model_lookups_total",
    "Model resolutions for prediction by outcome (pair, chain, miss, disabled)",
    ["model_type", "outcome"],
)
MODELS_WRITTEN = Counter(
    "training_models_written_total",
    "Model parameter rows written by training runs",
)
JOB_DURATION = Histogram(
    "legcast_job_duration_seconds",
    "Duration of training, version and housekeeping jobs",
    ["job"],
    buckets=(0.05, 0.25, 1, 5, 15, 60, 300, 900),
)
JOB_FAILURES = Counter(
    "legcast_job_failures_total",
    "Jobs that raised",
    ["job"],
)

LATENCY_WINDOW = 200
_LATENCY_SAMPLES: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=LATENCY_WINDOW))


def record_latency(path: str, duration_ms: float) -> None:
    _LATENCY_SAMPLES[path].append(duration_ms)


def latency_summary() -> List[dict]:
    """p50/p95 over the last LATENCY_WINDOW requests per path."""
    out: List[dict] = []
    for path, samples in sorted(_LATENCY_SAMPLES.items()):
        if not samples:
            continue
        p50, p95 = np.percentile(np.fromiter(samples, dtype=float), [50, 95])
        out.append(
            {
                "path": path,
                "p50_ms": round(float(p50), 2),
                "p95_ms": round(float(p95), 2),
                "sample_size": len(samples),
            }
        )
    return out


@router.get("/metrics")
async def metrics_endpoint() -> PlainTextResponse:
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/api/health/latency")
async def latency_health() -> dict:
    return {"paths": latency_summary()}
