from dataclasses import dataclass


@dataclass
class MetricBucket:
    total: int = 0
    cached: int = 0
    errors: int = 0
    slow: int = 0
    latency_total_ms: float = 0.0

    def record(self, duration_ms: float, cached: bool, error: bool, slow: bool = False) -> None:
        self.total += 1
        if cached:
            self.cached += 1
        if error:
            self.errors += 1
        if slow:
            self.slow += 1
        self.latency_total_ms += duration_ms

    def snapshot(self) -> dict[str, float | int]:
        avg = self.latency_total_ms / self.total if self.total else 0.0
        return {
            "total": self.total,
            "cached": self.cached,
            "errors": self.errors,
            "slow": self.slow,
            "avg_latency_ms": round(avg, 2),
        }


class WishlistMetrics:
    def __init__(self) -> None:
        self.details = MetricBucket()
        self.claims = MetricBucket()
        self.conflicts = 0

    def record_detail(self, duration_ms: float, cached: bool, error: bool, slow: bool = False) -> None:
        self.details.record(duration_ms, cached, error, slow)

    def record_claim(self, duration_ms: float, error: bool, conflict: bool = False) -> None:
        self.claims.record(duration_ms, cached=False, error=error)
        if conflict:
            self.conflicts += 1

    def snapshot(self) -> dict[str, object]:
        return {
            "wishlist_detail": self.details.snapshot(),
            "claims": {**self.claims.snapshot(), "conflicts": self.conflicts},
        }


wishlist_metrics = WishlistMetrics()
