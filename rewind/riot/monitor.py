# riot/monitor.py – suivi de la consommation de l'API Riot
# -----------------------------------------------------------------------------
#  Compteurs {requests, errors, cacheHits} par minute / heure / jour (UTC),
#  compteurs cumulés par clé, admission par minute et alertes consultatives.
#  Sauvegarde JSON toutes les N écritures.
# -----------------------------------------------------------------------------

from __future__ import annotations

import datetime as dt
import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

log = logging.getLogger(__name__)

DAY_FMT = "%Y-%m-%d"
HOUR_FMT = "%Y-%m-%d-%H"
MINUTE_FMT = "%Y-%m-%d-%H-%M"

TABLES = ("dailyStats", "hourlyStats", "minuteStats", "apiKeys")
TOTALS = ("totalRequests", "totalErrors", "totalCacheHits", "totalCacheMisses")


@dataclass(frozen=True)
class Limits:
    requests_per_minute: int = 50
    requests_per_day: int = 100_000


@dataclass(frozen=True)
class Admission:
    allowed: bool
    retry_after: float = 0.0
    reason: Optional[str] = None


def _empty_bucket() -> Dict[str, int]:
    return {"requests": 0, "errors": 0, "cacheHits": 0}


def _empty_stats() -> dict:
    return {
        "totalRequests": 0,
        "totalErrors": 0,
        "totalCacheHits": 0,
        "totalCacheMisses": 0,
        "dailyStats": {},
        "hourlyStats": {},
        "minuteStats": {},
        "apiKeys": {},
        "lastReset": int(time.time() * 1000),
    }


class UsageMonitor:
    """Rolling request counters with an admission check and advisory alerts."""

    def __init__(
        self,
        stats_file: Optional[os.PathLike | str] = None,
        limits: Limits = Limits(),
        alert_ratio: float = 0.8,
        save_every: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        self.stats_file = Path(stats_file) if stats_file else None
        self.limits = limits
        self.alert_ratio = alert_ratio
        self.save_every = max(1, save_every)
        self._clock = clock
        self._writes = 0
        self.stats = self._load()

    # ─── Persistance ──────────────────────────────────────────────────────
    def _load(self) -> dict:
        stats = _empty_stats()
        if self.stats_file is None or not self.stats_file.exists():
            return stats
        try:
            with open(self.stats_file, encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, ValueError) as e:
            log.error("Error loading API stats: %s", e)
            return stats

        if not isinstance(loaded, dict):
            log.error("Error loading API stats: expected an object, got %s", type(loaded).__name__)
            return stats
        stats.update(loaded)
        tables_ok = all(
            isinstance(stats[t], dict) and all(isinstance(row, dict) for row in stats[t].values())
            for t in TABLES
        )
        totals_ok = all(isinstance(stats[t], int) and not isinstance(stats[t], bool) for t in TOTALS)
        if not (tables_ok and totals_ok):
            log.error("Error loading API stats: unexpected layout in %s, starting fresh", self.stats_file)
            return _empty_stats()
        return stats

    def save(self) -> None:
        if self.stats_file is None:
            return
        try:
            self.stats_file.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.stats_file.with_suffix(".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self.stats, f, indent=2)
            os.replace(tmp, self.stats_file)
        except OSError as e:
            log.error("Error saving API stats: %s", e)

    def _touch(self) -> None:
        self._writes += 1
        if self._writes % self.save_every == 0:
            self.save()

    # ─── Buckets ──────────────────────────────────────────────────────────
    def _now(self) -> dt.datetime:
        return dt.datetime.fromtimestamp(self._clock(), tz=dt.timezone.utc)

    def buckets(self) -> Dict[str, str]:
        now = self._now()
        return {
            "day": now.strftime(DAY_FMT),
            "hour": now.strftime(HOUR_FMT),
            "minute": now.strftime(MINUTE_FMT),
        }

    def _bucket_rows(self, create: bool = True):
        b = self.buckets()
        rows = []
        for table, label in (("dailyStats", b["day"]), ("hourlyStats", b["hour"]), ("minuteStats", b["minute"])):
            bucket = self.stats[table].get(label)
            if bucket is None:
                bucket = _empty_bucket()
                if create:
                    self.stats[table][label] = bucket
            rows.append(bucket)
        return rows

    def _key_stats(self, credential_id: str) -> dict:
        keys = self.stats["apiKeys"]
        if credential_id not in keys:
            keys[credential_id] = {
                "totalRequests": 0,
                "totalErrors": 0,
                "totalCacheHits": 0,
                "totalDurationMs": 0,
            }
        return keys[credential_id]

    # ─── Enregistrement ───────────────────────────────────────────────────
    def record(
        self,
        credential_id: str,
        endpoint: str,
        status_code: int,
        from_cache: bool = False,
        duration_ms: float = 0,
    ) -> None:
        """
        Count one upstream call (or one cache-served answer when ``from_cache``).

        Cache-served answers only bump the cacheHits counters: they did not
        spend rate budget, so they must not count toward admission.
        A status code of 0 (no response) or >= 400 counts as an error.
        """
        day, hour, minute = self._bucket_rows()
        key = self._key_stats(credential_id)

        if from_cache:
            self.stats["totalCacheHits"] += 1
            key["totalCacheHits"] += 1
            for bucket in (day, hour, minute):
                bucket["cacheHits"] += 1
        else:
            self.stats["totalRequests"] += 1
            key["totalRequests"] += 1
            key["totalDurationMs"] += int(duration_ms)
            for bucket in (day, hour, minute):
                bucket["requests"] += 1

            if status_code == 0 or status_code >= 400:
                self.stats["totalErrors"] += 1
                key["totalErrors"] += 1
                for bucket in (day, hour, minute):
                    bucket["errors"] += 1

            log.debug("%s %s → %s (%dms)", credential_id, endpoint, status_code, duration_ms)
            self._check_alerts(minute["requests"], hour["requests"], day["requests"])

        self._touch()

    def record_cache_hit(self, endpoint: str = "") -> None:
        """Count an answer served by the cache; no credential was involved."""
        self.stats["totalCacheHits"] += 1
        for bucket in self._bucket_rows():
            bucket["cacheHits"] += 1
        log.debug("cache hit %s", endpoint)
        self._touch()

    def record_cache_miss(self) -> None:
        self.stats["totalCacheMisses"] += 1

    def _check_alerts(self, minute: int, hour: int, day: int) -> None:
        per_minute = self.limits.requests_per_minute * self.alert_ratio
        if minute >= per_minute:
            log.warning(
                "⚠️ API Rate Limit Alert: %d requests in current minute (limit: %d)",
                minute, self.limits.requests_per_minute,
            )
        if hour >= per_minute * 60:
            log.warning("⚠️ API Hourly Usage Alert: %d requests in current hour", hour)
        if day >= self.limits.requests_per_day * self.alert_ratio:
            log.warning(
                "⚠️ API Daily Limit Alert: %d requests today (limit: %d)",
                day, self.limits.requests_per_day,
            )

    # ─── Admission ────────────────────────────────────────────────────────
    def can_admit(self) -> Admission:
        """Deny once the current minute bucket reached the per-minute ceiling."""
        now = self._now()
        minute = self.stats["minuteStats"].get(now.strftime(MINUTE_FMT))
        if minute and minute["requests"] >= self.limits.requests_per_minute:
            retry_after = 60 - now.second - now.microsecond / 1_000_000
            return Admission(False, max(retry_after, 0.001), "rate_limit_per_minute")
        return Admission(True)

    # ─── Lecture ──────────────────────────────────────────────────────────
    def snapshot(self, credential_id: Optional[str] = None) -> dict:
        day, hour, minute = self._bucket_rows(create=False)
        s = self.stats
        lookups = s["totalCacheHits"] + s["totalCacheMisses"]

        def pct(value: int, limit: int) -> int:
            return round(value * 100 / limit) if limit else 0

        snap = {
            "current": {
                "minute": dict(minute, limit=self.limits.requests_per_minute,
                               percentage=pct(minute["requests"], self.limits.requests_per_minute)),
                "hour": dict(hour),
                "day": dict(day, limit=self.limits.requests_per_day,
                            percentage=pct(day["requests"], self.limits.requests_per_day)),
            },
            "total": {
                "requests": s["totalRequests"],
                "errors": s["totalErrors"],
                "cacheHits": s["totalCacheHits"],
                "cacheMisses": s["totalCacheMisses"],
                "cacheHitRate": pct(s["totalCacheHits"], lookups),
            },
        }
        if credential_id is not None:
            k = s["apiKeys"].get(credential_id) or {"totalRequests": 0, "totalErrors": 0, "totalCacheHits": 0}
            snap["apiKey"] = {
                "totalRequests": k["totalRequests"],
                "totalErrors": k["totalErrors"],
                "totalCacheHits": k["totalCacheHits"],
            }
        return snap

    def cleanup_old_stats(self) -> int:
        """Prune day buckets older than 7 days, hours older than 24h, minutes older than 1h."""
        now = self._now().replace(tzinfo=None)
        cutoffs = (
            ("dailyStats", DAY_FMT, now - dt.timedelta(days=7)),
            ("hourlyStats", HOUR_FMT, now - dt.timedelta(hours=24)),
            ("minuteStats", MINUTE_FMT, now - dt.timedelta(hours=1)),
        )
        cleaned = 0
        for table, fmt, cutoff in cutoffs:
            for label in list(self.stats[table]):
                try:
                    stamp = dt.datetime.strptime(label, fmt)
                except ValueError:
                    stamp = dt.datetime.min
                if stamp < cutoff:
                    del self.stats[table][label]
                    cleaned += 1

        if cleaned:
            log.info("Cleaned up %d old stat entries", cleaned)
            self.save()
        return cleaned
