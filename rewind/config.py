# config.py – Chargement des paramètres via pydantic-settings

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # — Discord —
    DISCORD_TOKEN: str
    DEBUG_GUILD_ID: Optional[int] = None  # pour les slash-commands en dev

    # — Riot API : clés (RIOT_API_KEY_2, _3… lus directement dans l'env) —
    RIOT_API_KEY: str = ""
    RIOT_API_KEYS: str = ""  # liste séparée par des virgules
    RIOT_API_REGION: str = "sea"  # région/plateforme par défaut

    # — Riot API : débit & retries —
    RIOT_REQUESTS_PER_SECOND: int = 20
    RIOT_REQUESTS_PER_MINUTE: int = 50  # clé perso : 100 req / 2 min
    RIOT_REQUESTS_PER_DAY: int = 100_000
    RIOT_REQUEST_TIMEOUT: float = 30.0
    RIOT_MAX_RETRIES: int = 3
    CREDENTIAL_COOLDOWN_SECONDS: float = 300.0

    # — Stockage —
    DATA_DIR: str = "data"  # cache → DATA_DIR/cache, stats → DATA_DIR/api_stats.json
    CACHE_MEMORY_MAX_ENTRIES: int = 1000

    # — Monitoring —
    USAGE_ALERT_RATIO: float = 0.8
    STATS_SAVE_EVERY: int = 10
    HEALTH_PORT: Optional[int] = None  # None → pas de serveur /health
    LOG_LEVEL: str = "INFO"

    # — Rewind —
    SEASON_QUEUE_ID: int = 420  # ranked solo/duo
    SEASON_EARLY_STOP: int = 50

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
