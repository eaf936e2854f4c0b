from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from hotel_offline.domain.models import HealthCheckItem, HealthReport
from hotel_offline.domain.ports import HealthProbePort

HEALTHY = "healthy"
WARNING = "warning"
UNHEALTHY = "unhealthy"


def classify(checks: Sequence[HealthCheckItem]) -> str:
    statuses = {check.status for check in checks}
    if "fail" in statuses:
        return UNHEALTHY
    if "warning" in statuses:
        return WARNING
    return HEALTHY


class HealthCheckUseCase:
    def __init__(self, probes: Sequence[HealthProbePort]) -> None:
        self._probes = probes

    def run(self) -> HealthReport:
        checks: list[HealthCheckItem] = []
        for probe in self._probes:
            checks.extend(self._build_checks(probe.category, probe.check()))
        return HealthReport(
            generated_at=datetime.now(timezone.utc).isoformat(),
            status=classify(checks),
            checks=tuple(checks),
        )

    @staticmethod
    def _build_checks(category: str, results: dict[str, tuple[str, str, dict]]) -> list[HealthCheckItem]:
        return [
            HealthCheckItem(key=key, status=status, message=message, category=category, details=dict(details))
            for key, (status, message, details) in results.items()
        ]
