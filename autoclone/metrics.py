"""
In-memory pipeline metrics, served at GET /metrics.

Three views, all keyed by name:
  calls   per service endpoint: count, errors, latency
  stages  per pipeline stage: ok / failed / fell back, duration
  runs    completed and failed totals

Plus the last few call failures for root-cause analysis. Everything is
process-local and resets on restart.
"""

import time
import threading
from typing import Dict, List, Optional
from collections import defaultdict, deque

_lock = threading.Lock()
_started_at = time.time()

MAX_SAMPLES = 100
MAX_ERRORS = 50


def _tally() -> dict:
    return {"count": 0, "errors": 0, "samples": deque(maxlen=MAX_SAMPLES)}


def _stage_tally() -> dict:
    return {"ok": 0, "failed": 0, "fallback": 0, "samples": deque(maxlen=MAX_SAMPLES)}


_calls: Dict[str, dict] = defaultdict(_tally)
_stages: Dict[str, dict] = defaultdict(_stage_tally)
_runs = {"completed": 0, "failed": 0}
_recent_errors: deque = deque(maxlen=MAX_ERRORS)


# ── Recording ─────────────────────────────────────────────────────────────────

def record_call(
    endpoint: str,
    duration_ms: float,
    error_type: Optional[str] = None,
    message: str = "",
):
    """One outbound service call. error_type is None when it succeeded."""
    with _lock:
        tally = _calls[endpoint]
        tally["count"] += 1
        tally["samples"].append(duration_ms)
        if error_type is None:
            return
        tally["errors"] += 1
        _recent_errors.append({
            "timestamp": time.time(),
            "endpoint": endpoint,
            "error_type": error_type,
            "message": message[:300],
        })


def record_stage(stage: str, success: bool, duration_ms: int, fallback: bool = False):
    """One committed ledger entry. fallback marks a non-fatal stage that degraded."""
    with _lock:
        tally = _stages[stage]
        if fallback:
            tally["fallback"] += 1
        elif success:
            tally["ok"] += 1
        else:
            tally["failed"] += 1
        tally["samples"].append(duration_ms)


def record_run(success: bool):
    with _lock:
        _runs["completed" if success else "failed"] += 1


def reset():
    """Drop everything collected so far."""
    global _started_at
    with _lock:
        _calls.clear()
        _stages.clear()
        _runs.update(completed=0, failed=0)
        _recent_errors.clear()
        _started_at = time.time()


# ── Snapshot ──────────────────────────────────────────────────────────────────

def _latency(samples) -> Optional[dict]:
    if not samples:
        return None
    sorted_s = sorted(samples)
    n = len(sorted_s)
    return {
        "p50": sorted_s[n // 2],
        "p95": sorted_s[int(n * 0.95)] if n >= 20 else sorted_s[-1],
        "avg": sum(sorted_s) / n,
    }


def get_snapshot() -> dict:
    now = time.time()

    with _lock:
        calls = {
            endpoint: {
                "count": tally["count"],
                "errors": tally["errors"],
                "latency_ms": _latency(tally["samples"]),
            }
            for endpoint, tally in _calls.items()
        }
        stages = {
            stage: {
                "ok": tally["ok"],
                "failed": tally["failed"],
                "fallback": tally["fallback"],
                "duration_ms": _latency(tally["samples"]),
            }
            for stage, tally in _stages.items()
        }

        error_patterns: Dict[str, int] = defaultdict(int)
        for err in _recent_errors:
            error_patterns[f"{err['endpoint']}:{err['error_type']}"] += 1
        recent: List[dict] = list(_recent_errors)[-10:]

        return {
            "timestamp": now,
            "uptime_seconds": now - _started_at,
            "runs": dict(_runs),
            "calls": calls,
            "stages": stages,
            "recent_errors": recent,
            "error_patterns": dict(error_patterns),
        }
