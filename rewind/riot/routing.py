# riot/routing.py – résolution plateforme / région pour l'API Riot
# -----------------------------------------------------------------------------
#  Deux granularités :
#    • plateforme (na1, euw1, sg2 …)  → summoner-v4, league-v4
#    • région     (americas, europe, asia, sea) → account-v1, match-v5
#  account-v1 n'a pas de valeur « sea » : on bascule sur « asia ».
#  resolve() est totale : une entrée invalide retombe sur les valeurs par défaut.
# -----------------------------------------------------------------------------

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

# Mapping plateforme → région globale (ph2 / th2 retirés : ne répondent pas)
PLATFORM_TO_REGION = {
    "na1": "americas", "br1": "americas", "la1": "americas", "la2": "americas",
    "euw1": "europe", "eun1": "europe", "ru": "europe", "tr1": "europe",
    "kr": "asia", "jp1": "asia",
    "oc1": "sea", "sg2": "sea", "tw2": "sea", "vn2": "sea",
}

# Plateforme par défaut pour chaque région
REGION_TO_PLATFORM = {
    "americas": "na1",
    "europe": "euw1",
    "asia": "kr",
    "sea": "sg2",
}

# Régions absentes d'account-v1 et leur voisine
ACCOUNT_REGION_FALLBACK = {"sea": "asia"}

FALLBACK_PLATFORM = "sg2"
FALLBACK_REGION = "sea"


class ApiFamily(enum.Enum):
    ACCOUNT = "account"    # région, sans « sea »
    SUMMONER = "summoner"  # plateforme (summoner-v4, league-v4)
    MATCH = "match"        # région

    @property
    def broad_only(self) -> bool:
        return self is ApiFamily.ACCOUNT

    @property
    def uses_platform(self) -> bool:
        return self is ApiFamily.SUMMONER


@dataclass(frozen=True)
class Route:
    platform: str
    region: str

    def host_for(self, family: ApiFamily) -> str:
        value = self.platform if family.uses_platform else self.region
        return f"https://{value}.api.riotgames.com"


def _lookup(hint: Optional[str]) -> Optional[Route]:
    value = (hint or "").strip().lower()
    if value in REGION_TO_PLATFORM:
        return Route(platform=REGION_TO_PLATFORM[value], region=value)
    if value in PLATFORM_TO_REGION:
        return Route(platform=value, region=PLATFORM_TO_REGION[value])
    return None


def resolve(hint: Optional[str], broad_only: bool = False, default: Optional[str] = FALLBACK_REGION) -> Route:
    """
    Map a user hint (platform or region) to both routing values.

    Args:
        hint: user-supplied routing value, may be None or garbage.
        broad_only: the target API family has no "sea" regional host.
        default: process-level default hint used when ``hint`` is invalid.

    Returns:
        A Route; never raises.
    """
    route = _lookup(hint) or _lookup(default) or Route(FALLBACK_PLATFORM, FALLBACK_REGION)
    if broad_only and route.region in ACCOUNT_REGION_FALLBACK:
        route = Route(platform=route.platform, region=ACCOUNT_REGION_FALLBACK[route.region])
    return route


def resolve_for(family: ApiFamily, hint: Optional[str], default: Optional[str] = FALLBACK_REGION) -> Route:
    return resolve(hint, broad_only=family.broad_only, default=default)
