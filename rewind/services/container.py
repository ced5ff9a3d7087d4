# services/container.py – assemblage des services partagés (clés, cache, file, client)

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from rewind.champions import ChampionNames
from rewind.riot.cache import DurableCache
from rewind.riot.client import RiotClient
from rewind.riot.credentials import CredentialRotator, load_credentials
from rewind.riot.monitor import Limits, UsageMonitor
from rewind.riot.scheduler import RequestScheduler, RetryPolicy
from rewind.services.season import SeasonAggregator

log = logging.getLogger(__name__)


@dataclass
class Services:
    rotator: CredentialRotator
    monitor: UsageMonitor
    cache: DurableCache
    scheduler: RequestScheduler
    client: RiotClient
    aggregator: SeasonAggregator
    champions: ChampionNames

    async def close(self) -> None:
        await self.client.close()
        self.monitor.save()


def build_services(settings, environ: Optional[Mapping[str, str]] = None) -> Services:
    """Wire every shared component from a settings object (``rewind.config.Settings``)."""
    environ = os.environ if environ is None else environ
    extra = [k.strip() for k in (settings.RIOT_API_KEYS or "").split(",") if k.strip()]
    rotator = CredentialRotator(
        load_credentials(settings.RIOT_API_KEY, extra, environ),
        cooldown=settings.CREDENTIAL_COOLDOWN_SECONDS,
    )

    data_dir = Path(settings.DATA_DIR)
    monitor = UsageMonitor(
        data_dir / "api_stats.json",
        limits=Limits(
            requests_per_minute=settings.RIOT_REQUESTS_PER_MINUTE,
            requests_per_day=settings.RIOT_REQUESTS_PER_DAY,
        ),
        alert_ratio=settings.USAGE_ALERT_RATIO,
        save_every=settings.STATS_SAVE_EVERY,
    )
    cache = DurableCache(data_dir / "cache", max_entries=settings.CACHE_MEMORY_MAX_ENTRIES)

    retries = settings.RIOT_MAX_RETRIES
    scheduler = RequestScheduler(
        rotator,
        monitor,
        default_region=settings.RIOT_API_REGION,
        requests_per_second=settings.RIOT_REQUESTS_PER_SECOND,
        timeout=settings.RIOT_REQUEST_TIMEOUT,
        policy=RetryPolicy(
            max_rate_limit_retries=retries,
            max_transient_retries=retries,
            max_credential_attempts=retries,
        ),
    )
    client = RiotClient(scheduler, cache, monitor, default_region=settings.RIOT_API_REGION)
    aggregator = SeasonAggregator(
        client,
        early_stop_threshold=settings.SEASON_EARLY_STOP,
        queue=settings.SEASON_QUEUE_ID,
    )
    log.info("Services ready (%d key(s), default region %s)", len(rotator), settings.RIOT_API_REGION)
    return Services(rotator, monitor, cache, scheduler, client, aggregator, ChampionNames())
