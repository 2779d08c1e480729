"""
Scan-flood guard: too many persisted scans for one employee in a sliding window.

Stateless; the count always comes from the store and covers [now - window, now].
Two concurrent scans that both read before either writes can slip past the
threshold (see DESIGN.md).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from geoattend.services.store import ScanStore

DEFAULT_WINDOW_MINUTES = 5
DEFAULT_MAX_SCANS = 2


@dataclass(frozen=True)
class RateCheck:
    is_violation: bool
    scan_count: int
    window_minutes: int
    max_scans: int
    recent_scans: list = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "isViolation": self.is_violation,
            "scanCount": self.scan_count,
            "windowMinutes": self.window_minutes,
            "maxScans": self.max_scans,
            "recentScanIds": [s.id for s in self.recent_scans],
        }


class RateGuard:
    def __init__(
        self,
        store: ScanStore,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
        max_scans: int = DEFAULT_MAX_SCANS,
    ) -> None:
        self.store = store
        self.window_minutes = window_minutes
        self.max_scans = max_scans

    async def check_rate(self, employee_id: int, now: datetime) -> RateCheck:
        since = now - timedelta(minutes=self.window_minutes)
        scan_count = await self.store.count_recent_scans(employee_id, since, now)
        is_violation = scan_count >= self.max_scans
        recent = await self.store.recent_scans(employee_id, since, now) if is_violation else []
        return RateCheck(
            is_violation=is_violation,
            scan_count=scan_count,
            window_minutes=self.window_minutes,
            max_scans=self.max_scans,
            recent_scans=recent,
        )
