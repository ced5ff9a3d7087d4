# riot/client.py – accès typés à l'API Riot (cache → file d'attente)

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

from rewind.riot.cache import DurableCache, MEMORY_TTL
from rewind.riot.errors import AuthFailure, NotFound, UpstreamError, ValidationError
from rewind.riot.monitor import UsageMonitor
from rewind.riot.routing import ApiFamily, FALLBACK_REGION, resolve_for
from rewind.riot.scheduler import RequestScheduler

log = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
RANKED_SOLO_QUEUE = 420


def _require(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required and must be a non-empty string")
    return value.strip()


def _has_puuid(payload: Any) -> bool:
    return isinstance(payload, dict) and bool(payload.get("puuid"))


def _is_list(payload: Any) -> bool:
    return isinstance(payload, list)


def _is_match(payload: Any) -> bool:
    return isinstance(payload, dict) and isinstance(payload.get("info"), dict)


def parse_riot_id(riot_id: str) -> Tuple[str, str]:
    """
    Split ``GameName#TagLine`` into its two parts.

    Raises:
        ValidationError: when the format is not exactly one ``#`` with
            non-empty text on both sides.
    """
    riot_id = _require(riot_id, "Riot ID")
    parts = riot_id.split("#")
    if len(parts) != 2:
        raise ValidationError(
            'Invalid Riot ID format. Expected format: GameName#TagLine (e.g., "SummonerName#TAG1")'
        )
    game_name, tag_line = parts[0].strip(), parts[1].strip()
    if not game_name or not tag_line:
        raise ValidationError("Invalid Riot ID format. Both game name and tag line are required.")
    return game_name, tag_line


class RiotClient:
    """Riot API accessors backed by the durable cache and the request scheduler."""

    def __init__(
        self,
        scheduler: RequestScheduler,
        cache: DurableCache,
        monitor: Optional[UsageMonitor] = None,
        default_region: str = FALLBACK_REGION,
        clock: Callable[[], float] = time.time,
    ):
        self.scheduler = scheduler
        self.cache = cache
        self.monitor = monitor
        self.default_region = default_region
        self._clock = clock

    async def close(self):
        await self.scheduler.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ─── Plomberie commune ────────────────────────────────────────────────
    def _route_value(self, family: ApiFamily, region: Optional[str]) -> str:
        route = resolve_for(family, region, self.default_region)
        return route.platform if family.uses_platform else route.region

    async def _fetch(
        self,
        prefix: str,
        key_params: Tuple[Any, ...],
        family: ApiFamily,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        region: Optional[str] = None,
        context: str = "",
        validate: Optional[Callable[[Any], bool]] = None,
        expected: str = "",
        persist: bool = True,
    ) -> Any:
        key = self.cache.generate_key(prefix, *key_params)
        cached = self.cache.get(key)
        if cached is not None and (validate is None or validate(cached)):
            if self.monitor is not None:
                self.monitor.record_cache_hit(path)
            return cached
        if self.monitor is not None:
            self.monitor.record_cache_miss()

        try:
            payload = await self.scheduler.request(family, path, params, region)
        except UpstreamError as e:
            raise self._normalize(e, context) from e

        if validate is not None and not validate(payload):
            raise UpstreamError(f"Invalid API response: {expected}", body=payload, endpoint=path)
        self.cache.set(key, payload, persist=persist)
        return payload

    @staticmethod
    def _normalize(error: UpstreamError, context: str) -> Exception:
        common = dict(status=error.status, body=error.body, endpoint=error.endpoint, credential_id=error.credential_id)
        if error.status == 404:
            return NotFound(f"{context} not found" if context else "Not found", context=context, **common)
        if error.status in (401, 403):
            return AuthFailure(
                f"API key is invalid or expired ({error.status})",
                credential_hint=error.credential_id, **common,
            )
        return error

    # ─── account-v1 (région) ──────────────────────────────────────────────
    async def get_account_by_riot_id(
        self, game_name: str, tag_line: str, region: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Get account by Riot ID (game name + tag).
        Account-V1: GET /riot/account/v1/accounts/by-riot-id/{gameName}/{tagLine}
        Routed via region group (americas/europe/asia; sea falls back to asia).
        """
        game_name = _require(game_name, "Game name")
        tag_line = _require(tag_line, "Tag line")
        path = f"/riot/account/v1/accounts/by-riot-id/{quote(game_name, safe='')}/{quote(tag_line, safe='')}"
        account = await self._fetch(
            "account",
            (game_name.lower(), tag_line.lower(), self._route_value(ApiFamily.ACCOUNT, region)),
            ApiFamily.ACCOUNT, path, region=region, context=f'Riot ID "{game_name}#{tag_line}"',
            validate=_has_puuid, expected="account data missing PUUID field",
        )
        return account

    # ─── summoner-v4 / league-v4 (plateforme) ────────────────────────────
    async def get_summoner_by_puuid(self, puuid: str, region: Optional[str] = None) -> Dict[str, Any]:
        """Get summoner information by PUUID."""
        puuid = _require(puuid, "PUUID")
        path = f"/lol/summoner/v4/summoners/by-puuid/{quote(puuid, safe='')}"
        summoner = await self._fetch(
            "summoner", (puuid, self._route_value(ApiFamily.SUMMONER, region)),
            ApiFamily.SUMMONER, path, region=region, context="Summoner profile",
            validate=_has_puuid, expected="summoner data missing PUUID field",
        )
        return summoner

    async def get_summoner_by_riot_id(self, riot_id: str, region: Optional[str] = None) -> Dict[str, Any]:
        """
        Resolve ``Name#TAG`` to a summoner profile.

        Two services, two routing granularities: account-v1 (regional) gives the
        PUUID, summoner-v4 (platform) gives the profile. The result is the
        profile merged with ``gameName``, ``tagLine`` and ``riotId``.
        """
        game_name, tag_line = parse_riot_id(riot_id)
        log.info("Looking up Riot ID %s#%s%s", game_name, tag_line, f" (region: {region})" if region else "")
        account = await self.get_account_by_riot_id(game_name, tag_line, region)
        summoner = await self.get_summoner_by_puuid(account["puuid"], region)

        game_name = account.get("gameName") or game_name
        tag_line = account.get("tagLine") or tag_line
        return {**summoner, "gameName": game_name, "tagLine": tag_line, "riotId": f"{game_name}#{tag_line}"}

    async def get_league_entries_by_puuid(self, puuid: str, region: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get ranked league entries by PUUID."""
        puuid = _require(puuid, "PUUID")
        path = f"/lol/league/v4/entries/by-puuid/{quote(puuid, safe='')}"
        entries = await self._fetch(
            "leagueEntries", (puuid, self._route_value(ApiFamily.SUMMONER, region)),
            ApiFamily.SUMMONER, path, region=region, context="League entries",
            validate=_is_list, expected="expected a list of league entries",
        )
        return entries

    # ─── match-v5 (région) ────────────────────────────────────────────────
    def _listing_generation(self) -> int:
        # Les pages d'IDs bougent à chaque nouvelle partie : la clé change toutes les 2 h
        # et elles ne vont jamais sur disque (mortes après leur génération)
        return int(self._clock() // MEMORY_TTL["matchIds"])

    async def get_match_ids(
        self,
        puuid: str,
        start: int = 0,
        count: int = MAX_PAGE_SIZE,
        queue: Optional[int] = RANKED_SOLO_QUEUE,
        region: Optional[str] = None,
    ) -> List[str]:
        """Get one page of match IDs for a player, newest first."""
        puuid = _require(puuid, "PUUID")
        if start < 0 or count < 1 or count > MAX_PAGE_SIZE:
            raise ValidationError("Invalid start or count parameters")

        path = f"/lol/match/v5/matches/by-puuid/{quote(puuid, safe='')}/ids"
        ids = await self._fetch(
            "matchIds",
            (puuid, start, count, queue, self._route_value(ApiFamily.MATCH, region), self._listing_generation()),
            ApiFamily.MATCH, path, {"start": start, "count": count, "queue": queue},
            region=region, context="Match history",
            validate=_is_list, expected="expected a list of match IDs",
            persist=False,
        )
        return ids

    async def get_match(self, match_id: str, region: Optional[str] = None) -> Dict[str, Any]:
        """Get detailed match information by match ID."""
        match_id = _require(match_id, "Match ID")
        path = f"/lol/match/v5/matches/{quote(match_id, safe='')}"
        match = await self._fetch(
            "matchDetails", (match_id, self._route_value(ApiFamily.MATCH, region)),
            ApiFamily.MATCH, path, region=region, context=f"Match {match_id}",
            validate=_is_match, expected="expected match object with info",
        )
        return match
