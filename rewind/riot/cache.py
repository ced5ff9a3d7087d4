# riot/cache.py – cache deux niveaux pour les réponses Riot
# -----------------------------------------------------------------------------
#  • Mémoire : OrderedDict borné (FIFO), TTL par préfixe logique.
#  • Disque  : un fichier JSON par clé, PERMANENT (aucune expiration).
#  • Un hit disque repeuple la mémoire.
#  • Un fichier corrompu est supprimé et traité comme absent.
# -----------------------------------------------------------------------------

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

log = logging.getLogger(__name__)

HOUR = 60 * 60

# TTL mémoire par préfixe (secondes) – le disque n'expire jamais
MEMORY_TTL: Dict[str, float] = {
    "matchIds": 2 * HOUR,
    "matchDetails": 24 * HOUR,
    "summoner": 1 * HOUR,
    "account": 2 * HOUR,
    "leagueEntries": 1 * HOUR,
}
DEFAULT_MEMORY_TTL = 1 * HOUR
MEMORY_MAX_ENTRIES = 1000


def generate_key(prefix: str, *params: Any) -> str:
    """
    Deterministic cache key for ``(prefix, *params)``.

    The prefix stays readable so the memory TTL can be derived from the key;
    the parameters are hashed (md5, fixed width) after JSON encoding so that
    ``("a_b",)`` and ``("a", "b")`` never collide.
    """
    raw = json.dumps([prefix, *[str(p) for p in params]], ensure_ascii=False)
    digest = hashlib.md5(raw.encode("utf-8")).hexdigest()
    return f"{prefix}_{digest}"


def prefix_of(key: str) -> str:
    return key.rsplit("_", 1)[0] if "_" in key else ""


@dataclass
class CacheCounters:
    memory_hits: int = 0
    disk_hits: int = 0
    misses: int = 0
    corrupted: int = 0


@dataclass
class _MemoryEntry:
    payload: Any
    stored_at: float = field(default=0.0)


class DurableCache:
    """Memory tier in front of a permanent one-file-per-key disk tier."""

    def __init__(
        self,
        cache_dir: os.PathLike | str,
        max_entries: int = MEMORY_MAX_ENTRIES,
        ttls: Optional[Dict[str, float]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_entries = max_entries
        self.ttls = dict(MEMORY_TTL if ttls is None else ttls)
        self._clock = clock
        self._memory: "OrderedDict[str, _MemoryEntry]" = OrderedDict()
        self.counters = CacheCounters()
        log.info("Permanent cache enabled – disk tier at %s never expires", self.cache_dir)

    generate_key = staticmethod(generate_key)

    # ─── Helpers ──────────────────────────────────────────────────────────
    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def memory_ttl(self, key: str) -> float:
        return self.ttls.get(prefix_of(key), DEFAULT_MEMORY_TTL)

    def _remember(self, key: str, payload: Any) -> None:
        if key in self._memory:
            del self._memory[key]
        elif len(self._memory) >= self.max_entries:
            self._memory.popitem(last=False)
        self._memory[key] = _MemoryEntry(payload=payload, stored_at=self._clock())

    def _read_disk(self, key: str) -> Tuple[bool, Any]:
        path = self._path(key)
        if not path.exists():
            return False, None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            log.warning("Unreadable cache file for key %s (%s), deleting", key, e)
            self.counters.corrupted += 1
            self._unlink(path)
            return False, None

        if not isinstance(data, dict) or "payload" not in data:
            log.warning("Corrupted cache file for key %s, deleting", key)
            self.counters.corrupted += 1
            self._unlink(path)
            return False, None
        return True, data["payload"]

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            log.error("Error deleting cache file %s: %s", path, e)
            return False

    # ─── API publique ─────────────────────────────────────────────────────
    def get(self, key: str) -> Optional[Any]:
        """
        Look a key up, memory first then disk.

        Returns:
            The stored payload, or None when neither tier has it.
        """
        entry = self._memory.get(key)
        if entry is not None:
            if self._clock() - entry.stored_at < self.memory_ttl(key):
                self.counters.memory_hits += 1
                log.debug("Memory cache HIT: %s", key)
                return entry.payload
            # Expiré en mémoire, le disque reste valide
            del self._memory[key]

        found, payload = self._read_disk(key)
        if not found:
            self.counters.misses += 1
            log.debug("Cache MISS: %s", key)
            return None

        self._remember(key, payload)
        self.counters.disk_hits += 1
        log.debug("Disk cache HIT (permanent): %s", key)
        return payload

    def set(self, key: str, payload: Any, persist: bool = True) -> None:
        """
        Store in both tiers. The disk write goes through a temp file + rename.

        ``persist=False`` keeps the entry in memory only, for payloads that are
        worthless once their memory TTL is over.
        """
        self._remember(key, payload)
        if not persist:
            log.debug("Cache SET (memory): %s", key)
            return

        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        record = {"storedAt": int(self._clock() * 1000), "payload": payload}
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(record, f, ensure_ascii=False)
            os.replace(tmp, path)
            log.debug("Cache SET: %s", key)
        except (OSError, TypeError, ValueError) as e:
            log.error("Error writing cache for key %s: %s", key, e)
            self._unlink(tmp)

    def delete(self, key: str) -> bool:
        self._memory.pop(key, None)
        removed = self._unlink(self._path(key))
        if removed:
            log.debug("Cache DELETE: %s", key)
        return removed

    def clear_all(self) -> int:
        """Administrative wipe of both tiers. Returns the number of files removed."""
        self._memory.clear()
        deleted = sum(1 for path in self.cache_dir.glob("*.json") if self._unlink(path))
        log.info("Cleared %d cache files", deleted)
        return deleted

    def prune_memory(self) -> int:
        """Drop expired memory entries (the disk copies stay)."""
        now = self._clock()
        expired = [k for k, e in self._memory.items() if now - e.stored_at >= self.memory_ttl(k)]
        for key in expired:
            del self._memory[key]
        if expired:
            log.debug("Cleaned %d expired memory cache entries", len(expired))
        return len(expired)

    def purge_corrupted(self) -> int:
        """Scan the disk tier and delete files that do not parse. Valid files are kept forever."""
        deleted = 0
        for path in self.cache_dir.glob("*.json"):
            try:
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
                valid = isinstance(data, dict) and "payload" in data
            except (OSError, ValueError):
                valid = False
            if not valid:
                log.warning("Deleting corrupted cache file: %s", path.name)
                deleted += self._unlink(path)
        if deleted:
            log.info("Cleared %d corrupted cache entries", deleted)
        return deleted

    def stats(self) -> dict:
        disk = {"total": 0, "valid": 0, "corrupted": 0, "size": 0}
        for path in self.cache_dir.glob("*.json"):
            disk["total"] += 1
            try:
                disk["size"] += path.stat().st_size
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
                ok = isinstance(data, dict) and "payload" in data
            except (OSError, ValueError):
                ok = False
            disk["valid" if ok else "corrupted"] += 1

        c = self.counters
        lookups = c.memory_hits + c.disk_hits + c.misses
        return {
            "memory": {"entries": len(self._memory), "max_size": self.max_entries},
            "disk": disk,
            "hits": {"memory": c.memory_hits, "disk": c.disk_hits, "misses": c.misses},
            "hit_rate": round((c.memory_hits + c.disk_hits) * 100 / lookups) if lookups else 0,
            "permanent": True,
        }
