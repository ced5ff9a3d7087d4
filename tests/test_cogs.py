"""Unit tests for the Discord command helpers."""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from rewind.champions import ChampionNames
from rewind.cogs.apistats import build_usage_embed
from rewind.cogs.lolstats import LolStatsCog, build_embed, describe_error
from rewind.riot.errors import (
    AuthFailure,
    NetworkError,
    NoCredentialsAvailable,
    NotFound,
    RateLimitError,
    RequestTimeout,
    UpstreamError,
    ValidationError,
)
from rewind.services.season import SeasonSummary, SeasonWindow

SUMMARY = SeasonSummary(
    season=2025, start_date="2025-01-01", end_date="2025-12-31",
    total_games=37, wins=20, losses=17, win_rate=54,
    kda={"kills": 6, "deaths": 4, "assists": 8, "kda": 3.5},
    top_champions=[{"champion_id": 103, "games": 19, "win_rate": 58}],
    skipped=0,
)


class TestDescribeError:
    """Test the user-facing error categories."""

    def test_validation(self):
        """Test a validation error echoes the input and the reason."""
        msg = describe_error(ValidationError("Invalid Riot ID format."), "Faker")
        assert "Invalid Riot ID format" in msg
        assert "`Faker`" in msg

    def test_not_found_with_and_without_region(self):
        """Test not-found messages mention the region or a tip."""
        assert "in region **euw1**" in describe_error(NotFound("nope"), "A#B", "euw1")
        assert "Tip" in describe_error(NotFound("nope"), "A#B")

    @pytest.mark.parametrize("error", [AuthFailure("expired"), NoCredentialsAvailable("none")])
    def test_auth(self, error):
        """Test key problems map to the authentication message."""
        assert "Authentication Failed" in describe_error(error, "A#B")

    def test_rate_limit(self):
        """Test a rate limit maps to its own message."""
        assert "Rate limit" in describe_error(RateLimitError("429"), "A#B")

    def test_timeout_before_network(self):
        """Test timeouts are reported apart from other network errors."""
        assert "Timeout" in describe_error(RequestTimeout("slow"), "A#B")
        assert "Network Error" in describe_error(NetworkError("reset"), "A#B")

    def test_upstream_status(self):
        """Test upstream errors show their status code."""
        assert "(500)" in describe_error(UpstreamError("Server error 500", status=500), "A#B")


class TestEmbeds:
    """Test embed rendering."""

    def test_rewind_embed(self):
        """Test the rewind embed fields and title."""
        embed = build_embed("Faker#KR1", SUMMARY, ChampionNames(), {"tier": "GOLD", "division": "II", "lp": 40})
        values = {f.name: f.value for f in embed.fields}

        assert embed.title == "🎮 Faker#KR1's Season 2025 Rewind"
        assert values["🏆 Total Games Played"] == "37 games"
        assert values["🎯 Win Rate"] == "54%"
        assert values["👑 Most Played Champions"] == "Ahri: 19 games (58% WR)"
        assert values["📈 Current Rank"] == "Gold II – 40 LP"

    def test_unranked_has_no_rank_field(self):
        """Test unranked players get no rank field."""
        embed = build_embed("A#B", SUMMARY, ChampionNames(), {"tier": "UNRANKED", "division": "", "lp": 0})
        assert all("Rank" not in f.name for f in embed.fields)

    def test_usage_embed(self):
        """Test the /apistats embed fields."""
        usage = {
            "current": {
                "minute": {"requests": 10, "limit": 50, "percentage": 20},
                "hour": {"requests": 120},
                "day": {"requests": 900, "limit": 100000, "percentage": 1},
            },
            "total": {"requests": 1234, "errors": 3, "cacheHits": 800, "cacheMisses": 200, "cacheHitRate": 80},
        }
        keys = [{"id": "primary", "enabled": True, "health": "healthy", "request_count": 1234, "error_count": 0}]
        cache = {
            "memory": {"entries": 5, "max_size": 1000},
            "disk": {"total": 2, "valid": 2, "corrupted": 0, "size": 2048},
            "hit_rate": 80,
        }

        embed = build_usage_embed(usage, keys, cache)
        values = {f.name: f.value for f in embed.fields}

        assert "10/50 (20%)" in values["⏱️ Current Usage"]
        assert "1,234" in values["📈 Total Statistics"]
        assert values["🔑 API Keys Status"] == "✅ 🟢 **primary**: 1,234 req, 0 errors"


@pytest.mark.asyncio
class TestLolStatsCommand:
    """Test the /lolstats flow with mocked services."""

    def make_cog(self, summary=SUMMARY):
        services = SimpleNamespace(
            client=MagicMock(),
            aggregator=MagicMock(),
            champions=ChampionNames(),
        )
        services.client.get_summoner_by_riot_id = AsyncMock(
            return_value={"puuid": "P123456789", "riotId": "Faker#KR1"}
        )
        services.client.get_league_entries_by_puuid = AsyncMock(return_value=[])
        services.aggregator.rewind = AsyncMock(return_value=summary)
        services.champions.initialize = AsyncMock()
        return LolStatsCog(SimpleNamespace(services=services)), services

    def make_interaction(self):
        interaction = MagicMock()
        interaction.response.defer = AsyncMock()
        interaction.edit_original_response = AsyncMock()
        return interaction

    async def test_sends_final_embed(self):
        """Test /lolstats defers and ends with the rewind embed."""
        cog, services = self.make_cog()
        interaction = self.make_interaction()

        await cog.lolstats.callback(cog, interaction, "Faker#KR1", None)

        interaction.response.defer.assert_awaited_once()
        final = interaction.edit_original_response.await_args.kwargs
        assert final["embed"].title.startswith("🎮 Faker#KR1")
        assert isinstance(services.aggregator.rewind.await_args.args[1], SeasonWindow)

    async def test_error_message(self):
        """Test a lookup failure ends with an error message."""
        cog, services = self.make_cog()
        services.client.get_summoner_by_riot_id.side_effect = NotFound("no such account")
        interaction = self.make_interaction()

        await cog.lolstats.callback(cog, interaction, "Ghost#000", None)

        content = interaction.edit_original_response.await_args.kwargs["content"]
        assert "Ghost#000" in content
        services.aggregator.rewind.assert_not_called()

    async def test_no_games(self):
        """Test a season without games gets a plain message."""
        empty = SeasonSummary(2025, "2025-01-01", "2025-12-31", 0, 0, 0, 0,
                              {"kills": 0, "deaths": 0, "assists": 0, "kda": 0.0}, [], 0)
        cog, _ = self.make_cog(empty)
        interaction = self.make_interaction()

        await cog.lolstats.callback(cog, interaction, "Faker#KR1", None)

        content = interaction.edit_original_response.await_args.kwargs["content"]
        assert "no matches found for Season 2025" in content
