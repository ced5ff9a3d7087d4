# services/stats.py – statistiques dérivées pour le « rewind » de saison

from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Sequence

TIER_ORDER = {
    "UNRANKED": 0, "IRON": 1, "BRONZE": 2, "SILVER": 3, "GOLD": 4, "PLATINUM": 5,
    "EMERALD": 6, "DIAMOND": 7, "MASTER": 8, "GRANDMASTER": 9, "CHALLENGER": 10,
}
DIVISION_ORDER = {"IV": 1, "III": 2, "II": 3, "I": 4}


def win_rate(records: Sequence) -> int:
    """Win rate in percent, rounded. 0 for an empty season."""
    if not records:
        return 0
    wins = sum(1 for r in records if r.win)
    return round(wins * 100 / len(records))


def top_champions(records: Iterable, top: int = 5) -> List[Dict[str, int]]:
    """Most played champions, ties broken by champion id so the order is stable."""
    games: Counter = Counter()
    wins: Counter = Counter()
    for r in records:
        games[r.champion_id] += 1
        if r.win:
            wins[r.champion_id] += 1

    ranked = sorted(games.items(), key=lambda kv: (-kv[1], kv[0]))[:top]
    return [
        {"champion_id": cid, "games": n, "win_rate": round(wins[cid] * 100 / n)}
        for cid, n in ranked
    ]


def kda(records: Sequence) -> Dict[str, float]:
    """Average kills/deaths/assists per game and the overall KDA ratio."""
    if not records:
        return {"kills": 0, "deaths": 0, "assists": 0, "kda": 0.0}

    kills = sum(r.kills for r in records)
    deaths = sum(r.deaths for r in records)
    assists = sum(r.assists for r in records)
    ratio = (kills + assists) if deaths == 0 else (kills + assists) / deaths
    n = len(records)
    return {
        "kills": round(kills / n),
        "deaths": round(deaths / n),
        "assists": round(assists / n),
        "kda": round(ratio, 2),
    }


def peak_rank(entries: Iterable[dict]) -> Dict[str, object]:
    """Highest tier/division/LP among league entries (UNRANKED when none)."""
    best = ("UNRANKED", "", 0)

    def score(tier: str, division: str, lp: int):
        return TIER_ORDER.get(tier, 0), DIVISION_ORDER.get(division, 0), lp

    for entry in entries or []:
        if not isinstance(entry, dict):
            continue
        tier = str(entry.get("tier") or "UNRANKED").upper()
        division = str(entry.get("rank") or entry.get("division") or "").upper()
        try:
            lp = int(entry.get("leaguePoints") or 0)
        except (TypeError, ValueError):
            lp = 0
        if score(tier, division, lp) > score(*best):
            best = (tier, division, lp)

    return {"tier": best[0], "division": best[1], "lp": best[2]}
