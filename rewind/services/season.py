# services/season.py – agrégation d'une saison complète (« year-end rewind »)
# -----------------------------------------------------------------------------
#  Pagination des IDs (100 par page), détail de chaque match (caché),
#  filtre fenêtre [début, fin] inclusif, arrêt anticipé après N matchs
#  consécutifs antérieurs à la saison (liste supposée antichronologique).
#  L'arrêt anticipé est une optimisation, pas une garantie de complétude.
# -----------------------------------------------------------------------------

from __future__ import annotations

import datetime as dt
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from rewind.riot.client import MAX_PAGE_SIZE, RANKED_SOLO_QUEUE, RiotClient
from rewind.riot.errors import NotFound, UpstreamError
from rewind.services import stats

log = logging.getLogger(__name__)

EARLY_STOP_THRESHOLD = 50
EMPTY_PAGE_CONFIRMATIONS = 2
PROGRESS_EVERY_SECONDS = 30.0


def _ms(moment: dt.datetime) -> int:
    return int(moment.timestamp() * 1000)


@dataclass(frozen=True)
class SeasonWindow:
    season: int
    start_ms: int
    end_ms: int

    @classmethod
    def for_year(cls, year: int) -> "SeasonWindow":
        """Calendar year in UTC, both bounds inclusive."""
        start = dt.datetime(year, 1, 1, tzinfo=dt.timezone.utc)
        end = dt.datetime(year + 1, 1, 1, tzinfo=dt.timezone.utc)
        return cls(season=year, start_ms=_ms(start), end_ms=_ms(end) - 1)

    @classmethod
    def current(cls, now: Optional[float] = None) -> "SeasonWindow":
        moment = dt.datetime.fromtimestamp(time.time() if now is None else now, tz=dt.timezone.utc)
        return cls.for_year(moment.year)

    def contains(self, created_ms: int) -> bool:
        return self.start_ms <= created_ms <= self.end_ms

    @property
    def start_date(self) -> str:
        return dt.datetime.fromtimestamp(self.start_ms / 1000, tz=dt.timezone.utc).strftime("%Y-%m-%d")

    @property
    def end_date(self) -> str:
        return dt.datetime.fromtimestamp(self.end_ms / 1000, tz=dt.timezone.utc).strftime("%Y-%m-%d")


@dataclass(frozen=True)
class MatchRecord:
    match_id: str
    champion_id: int
    win: bool
    kills: int
    deaths: int
    assists: int
    game_creation_ms: int


@dataclass(frozen=True)
class Progress:
    pages: int
    scanned: int
    in_window: int
    skipped: int


@dataclass
class SeasonCollection:
    records: List[MatchRecord] = field(default_factory=list)
    match_ids: List[str] = field(default_factory=list)
    pages: int = 0
    scanned: int = 0
    skipped: int = 0
    stopped_early: bool = False


@dataclass(frozen=True)
class SeasonSummary:
    season: int
    start_date: str
    end_date: str
    total_games: int
    wins: int
    losses: int
    win_rate: int
    kda: Dict[str, float]
    top_champions: List[Dict[str, int]]
    skipped: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


def creation_ms(match: Dict[str, Any]) -> Optional[int]:
    info = match.get("info")
    if not isinstance(info, dict):
        return None
    value = info.get("gameCreation")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return None
    return int(value)


def extract_record(match_id: str, match: Dict[str, Any], puuid: str) -> Optional[MatchRecord]:
    """Reduce one match to the queried player's line, or None when malformed."""
    created = creation_ms(match)
    if created is None:
        return None
    participants = match["info"].get("participants")
    if not isinstance(participants, list):
        return None

    player = next((p for p in participants if isinstance(p, dict) and p.get("puuid") == puuid), None)
    if player is None or player.get("championId") is None:
        return None
    try:
        return MatchRecord(
            match_id=match_id,
            champion_id=int(player["championId"]),
            win=bool(player.get("win", False)),
            kills=int(player.get("kills") or 0),
            deaths=int(player.get("deaths") or 0),
            assists=int(player.get("assists") or 0),
            game_creation_ms=created,
        )
    except (TypeError, ValueError):
        return None


def summarize(records: List[MatchRecord], window: SeasonWindow, skipped: int = 0) -> SeasonSummary:
    wins = sum(1 for r in records if r.win)
    return SeasonSummary(
        season=window.season,
        start_date=window.start_date,
        end_date=window.end_date,
        total_games=len(records),
        wins=wins,
        losses=len(records) - wins,
        win_rate=stats.win_rate(records),
        kda=stats.kda(records),
        top_champions=stats.top_champions(records, 5),
        skipped=skipped,
    )


ProgressCallback = Callable[[Progress], Awaitable[None]]


class SeasonAggregator:
    """Walks a player's match history for one season window."""

    def __init__(
        self,
        client: RiotClient,
        page_size: int = MAX_PAGE_SIZE,
        early_stop_threshold: int = EARLY_STOP_THRESHOLD,
        queue: Optional[int] = RANKED_SOLO_QUEUE,
        progress_every: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.page_size = page_size
        self.early_stop_threshold = early_stop_threshold
        self.queue = queue
        self.progress_every = max(1, progress_every)
        self._clock = clock

    async def _walk(
        self,
        puuid: str,
        window: SeasonWindow,
        region: Optional[str],
        state: SeasonCollection,
    ) -> AsyncIterator[Tuple[str, Dict[str, Any]]]:
        offset = 0
        empty_pages = 0
        before_window = 0
        # Des pages d'âges différents (cache / fraîches) peuvent se chevaucher
        seen: set = set()

        while True:
            page = await self.client.get_match_ids(
                puuid, start=offset, count=self.page_size, queue=self.queue, region=region
            )
            state.pages += 1

            if not page:
                empty_pages += 1
                if empty_pages >= EMPTY_PAGE_CONFIRMATIONS:
                    return
                offset += self.page_size
                continue
            empty_pages = 0

            for match_id in page:
                if match_id in seen:
                    log.debug("Match %s already listed - skipping duplicate", match_id)
                    continue
                seen.add(match_id)
                state.scanned += 1
                try:
                    match = await self.client.get_match(match_id, region)
                except (NotFound, UpstreamError) as e:
                    log.warning("Skipping match %s: %s", match_id, e)
                    state.skipped += 1
                    continue

                created = creation_ms(match)
                if created is None:
                    log.warning("Match %s has invalid gameCreation timestamp - skipping", match_id)
                    state.skipped += 1
                    continue

                if created < window.start_ms:
                    before_window += 1
                    if before_window >= self.early_stop_threshold:
                        log.info(
                            "Stopping early: %d consecutive matches before season %d start",
                            before_window, window.season,
                        )
                        state.stopped_early = True
                        return
                    continue

                # Dans la saison ou postérieur (horloge) : on repart de zéro
                before_window = 0
                if created > window.end_ms:
                    continue
                yield match_id, match

            offset += len(page)

    async def collect(
        self,
        puuid: str,
        window: SeasonWindow,
        region: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> SeasonCollection:
        """
        Fetch every in-window match for ``puuid`` and reduce it to MatchRecords.

        Malformed matches (no participant line, no champion, bad timestamp) are
        skipped and counted. Errors on the listing itself propagate.
        """
        state = SeasonCollection()
        last_report = self._clock()

        async for match_id, match in self._walk(puuid, window, region, state):
            state.match_ids.append(match_id)
            record = extract_record(match_id, match, puuid)
            if record is None:
                log.warning("Player not found or incomplete in match %s - skipping", match_id)
                state.skipped += 1
                continue
            state.records.append(record)

            if progress is not None and (
                len(state.records) % self.progress_every == 0
                or self._clock() - last_report >= PROGRESS_EVERY_SECONDS
            ):
                last_report = self._clock()
                await progress(Progress(state.pages, state.scanned, len(state.records), state.skipped))

        log.info(
            "Season %d: %d matches kept (%d scanned, %d skipped, %d pages)",
            window.season, len(state.records), state.scanned, state.skipped, state.pages,
        )
        return state

    async def get_all_match_ids_for_window(
        self, puuid: str, window: SeasonWindow, region: Optional[str] = None
    ) -> List[str]:
        """IDs of the player's matches created inside ``window``, newest first."""
        return (await self.collect(puuid, window, region)).match_ids

    async def rewind(
        self,
        puuid: str,
        window: SeasonWindow,
        region: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> SeasonSummary:
        collection = await self.collect(puuid, window, region, progress)
        return summarize(collection.records, window, collection.skipped)
