# riot/credentials.py – rotation des clés API Riot
# -----------------------------------------------------------------------------
#  • Round-robin sur les clés actives (secret non vide).
#  • 3 erreurs 401/403/429 → clé désactivée pendant le cooldown.
#  • Le cooldown est vérifié paresseusement à la sélection (pas de timer).
#  • Si toutes les clés sont désactivées : réactivation d'urgence, une fois.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from rewind.riot.errors import NoCredentialsAvailable

log = logging.getLogger(__name__)

# Statuts qui comptent pour la désactivation d'une clé
DISABLING_STATUSES = frozenset({401, 403, 429})
ERROR_THRESHOLD = 3
DEFAULT_COOLDOWN = 5 * 60  # secondes

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def clean_secret(raw: Optional[str]) -> str:
    """Trim whitespace and strip control characters pasted along with a key."""
    if not raw:
        return ""
    return _CONTROL_CHARS.sub("", raw.strip())


def mask_secret(secret: str) -> str:
    if not secret:
        return "MISSING"
    if len(secret) <= 12:
        return secret[:2] + "…"
    return f"{secret[:8]}…{secret[-4:]}"


@dataclass
class Credential:
    id: str
    secret: str
    enabled: bool = True
    last_used_at: float = 0.0
    error_count: int = 0
    request_count: int = 0
    disabled_until: Optional[float] = None

    @property
    def usable(self) -> bool:
        return self.enabled and bool(self.secret)

    @property
    def health(self) -> str:
        if self.error_count == 0:
            return "healthy"
        return "degraded" if self.error_count < ERROR_THRESHOLD else "unhealthy"


def load_credentials(
    primary: Optional[str] = None,
    extra: Iterable[str] = (),
    environ: Optional[Mapping[str, str]] = None,
) -> List[Credential]:
    """
    Build the credential pool from configuration.

    Args:
        primary: RIOT_API_KEY, registered as ``primary``.
        extra: additional keys (RIOT_API_KEYS, comma separated upstream).
        environ: mapping scanned for RIOT_API_KEY_2, RIOT_API_KEY_3, ... until
            the first missing index.

    Returns:
        Credentials in configuration order.
    """
    creds: List[Credential] = []
    if primary:
        creds.append(Credential(id="primary", secret=clean_secret(primary)))

    index = 2
    if environ is not None:
        while environ.get(f"RIOT_API_KEY_{index}"):
            creds.append(Credential(id=f"key_{index}", secret=clean_secret(environ[f"RIOT_API_KEY_{index}"])))
            index += 1

    for raw in extra:
        secret = clean_secret(raw)
        if not secret or any(c.secret == secret for c in creds):
            continue
        creds.append(Credential(id=f"key_{index}", secret=secret))
        index += 1

    if creds:
        log.info("Loaded %d API key(s): %s", len(creds), ", ".join(c.id for c in creds))
    else:
        log.error("No API keys configured! Set RIOT_API_KEY (and optionally RIOT_API_KEY_2, ...)")
    return creds


class CredentialRotator:
    """Round-robin selection over a pool of interchangeable API keys."""

    def __init__(
        self,
        credentials: Iterable[Credential],
        cooldown: float = DEFAULT_COOLDOWN,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._credentials: List[Credential] = list(credentials)
        self._by_id: Dict[str, Credential] = {c.id: c for c in self._credentials}
        self._index = 0
        self.cooldown = cooldown
        self._clock = clock

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def credentials(self) -> List[Credential]:
        return list(self._credentials)

    def _reenable_cooled_down(self) -> None:
        now = self._clock()
        for cred in self._credentials:
            if not cred.enabled and cred.disabled_until is not None and now >= cred.disabled_until:
                cred.enabled = True
                cred.error_count = 0
                cred.disabled_until = None
                log.info("API key %s re-enabled after cooldown", cred.id)

    def _usable(self, exclude: frozenset) -> List[Credential]:
        return [c for c in self._credentials if c.usable and c.id not in exclude]

    def has_alternative(self, exclude: Iterable[str]) -> bool:
        """True if a usable credential outside ``exclude`` exists right now."""
        self._reenable_cooled_down()
        return bool(self._usable(frozenset(exclude)))

    def next_credential(self, exclude: Iterable[str] = ()) -> Credential:
        """
        Select the next usable credential, round-robin.

        Raises:
            NoCredentialsAvailable: when nothing qualifies, even after the
                emergency re-enable of every key with a secret.
        """
        excluded = frozenset(exclude)
        self._reenable_cooled_down()
        candidates = self._usable(excluded)

        if not candidates and not excluded:
            if not any(c.secret for c in self._credentials):
                raise NoCredentialsAvailable(
                    "No API keys available. Set RIOT_API_KEY in your .env file."
                )
            log.warning("All API keys disabled, attempting to re-enable valid keys")
            for cred in self._credentials:
                if cred.secret:
                    cred.enabled = True
                    cred.error_count = 0
                    cred.disabled_until = None
            candidates = self._usable(excluded)

        if not candidates:
            raise NoCredentialsAvailable("No valid API keys available. All keys are invalid or disabled.")

        cred = candidates[self._index % len(candidates)]
        self._index += 1
        cred.last_used_at = time.time()
        cred.request_count += 1
        return cred

    def record_error(self, credential_id: str, status: Optional[int]) -> None:
        cred = self._by_id.get(credential_id)
        if cred is None:
            return

        cred.error_count += 1
        if status in DISABLING_STATUSES and cred.error_count >= ERROR_THRESHOLD and cred.enabled:
            cred.enabled = False
            cred.disabled_until = self._clock() + self.cooldown
            log.warning(
                "API key %s disabled due to %d errors (last: %s), cooldown %ds",
                cred.id, cred.error_count, status, self.cooldown,
            )

    def record_success(self, credential_id: str) -> None:
        # Ne réactive jamais une clé désactivée avant la fin du cooldown
        cred = self._by_id.get(credential_id)
        if cred is not None and cred.error_count > 0:
            cred.error_count -= 1

    def stats(self) -> List[dict]:
        self._reenable_cooled_down()
        return [
            {
                "id": c.id,
                "enabled": c.enabled,
                "request_count": c.request_count,
                "error_count": c.error_count,
                "last_used_at": c.last_used_at,
                "health": c.health,
                "preview": mask_secret(c.secret),
            }
            for c in self._credentials
        ]
