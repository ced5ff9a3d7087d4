"""Unit tests for season aggregation."""

import datetime as dt

import pytest
from unittest.mock import AsyncMock

from rewind.riot.cache import DurableCache
from rewind.riot.client import RiotClient
from rewind.riot.credentials import Credential, CredentialRotator
from rewind.riot.errors import AuthFailure, NotFound, UpstreamError
from rewind.riot.monitor import UsageMonitor
from rewind.riot.scheduler import RequestScheduler, Response
from rewind.services.season import (
    MatchRecord,
    SeasonAggregator,
    SeasonWindow,
    extract_record,
    summarize,
)

PUUID = "P123"
WINDOW = SeasonWindow.for_year(2025)
IN = WINDOW.start_ms + 86_400_000      # 2 janvier
BEFORE = WINDOW.start_ms - 86_400_000  # 31 décembre
AFTER = WINDOW.end_ms + 86_400_000


def match(created, win=True, champion=103, kills=5, deaths=2, assists=7, puuid=PUUID):
    return {
        "metadata": {},
        "info": {
            "gameCreation": created,
            "participants": [
                {"puuid": "someone-else", "championId": 1, "win": not win},
                {"puuid": puuid, "championId": champion, "win": win,
                 "kills": kills, "deaths": deaths, "assists": assists},
            ],
        },
    }


class FakeHistory:
    """Paged match listing over an in-memory, newest-first history."""

    def __init__(self, matches):
        self.ids = [f"EUW1_{i}" for i in range(len(matches))]
        self.details = dict(zip(self.ids, matches))
        self.pages = []
        self.fetched = []

    async def get_match_ids(self, puuid, start=0, count=100, queue=420, region=None):
        self.pages.append(start)
        return self.ids[start:start + count]

    async def get_match(self, match_id, region=None):
        self.fetched.append(match_id)
        value = self.details[match_id]
        if isinstance(value, Exception):
            raise value
        return value


class TestSeasonWindow:
    """Test calendar-year windows."""

    def test_bounds(self):
        """Test window bounds and formatted dates for a calendar year."""
        window = SeasonWindow.for_year(2025)
        start = dt.datetime(2025, 1, 1, tzinfo=dt.timezone.utc).timestamp() * 1000
        assert window.start_ms == int(start)
        assert window.end_ms == int(dt.datetime(2026, 1, 1, tzinfo=dt.timezone.utc).timestamp() * 1000) - 1
        assert window.start_date == "2025-01-01"
        assert window.end_date == "2025-12-31"

    def test_bounds_are_inclusive(self):
        """Test both window bounds are inclusive to the millisecond."""
        assert WINDOW.contains(WINDOW.start_ms)
        assert WINDOW.contains(WINDOW.end_ms)
        assert not WINDOW.contains(WINDOW.start_ms - 1)
        assert not WINDOW.contains(WINDOW.end_ms + 1)

    def test_current(self):
        """Test the current window follows the UTC year of the clock."""
        now = dt.datetime(2024, 7, 1, tzinfo=dt.timezone.utc).timestamp()
        assert SeasonWindow.current(now).season == 2024


class TestExtractRecord:
    """Test reduction of a match to the player's line."""

    def test_extracts_player(self):
        """Test the queried player's line becomes a MatchRecord."""
        record = extract_record("EUW1_1", match(IN, win=False, champion=22), PUUID)
        assert record == MatchRecord("EUW1_1", 22, False, 5, 2, 7, IN)

    def test_missing_participant(self):
        """Test a match without the player is rejected."""
        assert extract_record("EUW1_1", match(IN, puuid="other"), PUUID) is None

    def test_missing_champion(self):
        """Test a participant without championId is rejected."""
        m = match(IN)
        del m["info"]["participants"][1]["championId"]
        assert extract_record("EUW1_1", m, PUUID) is None

    def test_missing_creation(self):
        """Test a match without a creation timestamp is rejected."""
        assert extract_record("EUW1_1", match(0), PUUID) is None


@pytest.mark.asyncio
class TestAggregation:
    """Test pagination, window filter and early stop."""

    async def test_window_filter(self):
        """Test only in-window matches are kept, in listing order."""
        history = FakeHistory([match(AFTER)] * 2 + [match(IN)] * 5 + [match(BEFORE)] * 3)
        collection = await SeasonAggregator(history, page_size=100).collect(PUUID, WINDOW)

        assert len(collection.records) == 5
        assert collection.match_ids == history.ids[2:7]
        assert all(WINDOW.contains(r.game_creation_ms) for r in collection.records)

    async def test_early_stop_halts_pagination(self):
        """Test pagination stops once enough pre-season matches follow each other."""
        history = FakeHistory([match(IN)] * 3 + [match(BEFORE)] * 20)
        aggregator = SeasonAggregator(history, page_size=10, early_stop_threshold=5)

        collection = await aggregator.collect(PUUID, WINDOW)

        assert collection.stopped_early
        assert len(collection.records) == 3
        assert history.pages == [0]
        assert len(history.fetched) == 8

    async def test_threshold_minus_one_keeps_going(self):
        """Test an in-window match resets the pre-season counter."""
        history = FakeHistory([match(BEFORE)] * 4 + [match(IN, champion=7)] + [match(BEFORE)] * 2)
        aggregator = SeasonAggregator(history, page_size=3, early_stop_threshold=5)

        collection = await aggregator.collect(PUUID, WINDOW)

        assert not collection.stopped_early
        assert [r.champion_id for r in collection.records] == [7]
        assert history.pages == [0, 3, 6, 7, 10]

    async def test_post_window_resets_counter(self):
        """Test a post-window match also resets the pre-season counter."""
        history = FakeHistory(
            [match(BEFORE)] * 2 + [match(AFTER)] + [match(BEFORE)] * 2 + [match(IN)]
        )
        aggregator = SeasonAggregator(history, page_size=10, early_stop_threshold=3)

        collection = await aggregator.collect(PUUID, WINDOW)

        assert len(collection.records) == 1

    async def test_two_empty_pages_stop(self):
        """Test two consecutive empty pages end pagination."""
        history = FakeHistory([])
        collection = await SeasonAggregator(history, page_size=100).collect(PUUID, WINDOW)

        assert collection.records == []
        assert history.pages == [0, 100]

    async def test_overlapping_pages_are_counted_once(self):
        """Test a match listed on two pages is fetched and counted once."""
        history = FakeHistory([match(IN, champion=100 + i) for i in range(6)] + [match(BEFORE)] * 2)
        served = history.get_match_ids

        async def shifting(puuid, start=0, count=100, queue=420, region=None):
            page = await served(puuid, start, count, queue, region)
            if start == 0:
                # Deux parties jouées entre la première page et la suivante
                history.ids[:0] = ["EUW1_new0", "EUW1_new1"]
                history.details.update({"EUW1_new0": match(IN), "EUW1_new1": match(IN)})
            return page

        history.get_match_ids = shifting
        collection = await SeasonAggregator(history, page_size=4).collect(PUUID, WINDOW)

        assert [r.champion_id for r in collection.records] == [100, 101, 102, 103, 104, 105]
        assert len(set(collection.match_ids)) == len(collection.match_ids)
        assert sorted(history.fetched) == sorted(set(history.fetched))
        assert collection.scanned == 8

    async def test_malformed_and_missing_matches_are_skipped(self):
        """Test missing or malformed matches are skipped and counted."""
        broken = match(IN)
        broken["info"]["participants"] = []
        history = FakeHistory([
            match(IN),
            broken,
            NotFound("Match not found"),
            UpstreamError("Invalid API response", status=200),
            match(0),
            match(IN),
        ])

        summary = await SeasonAggregator(history).rewind(PUUID, WINDOW)

        assert summary.total_games == 2
        assert summary.skipped == 4

    async def test_auth_failure_propagates(self):
        """Test an auth failure on a detail aborts the walk."""
        history = FakeHistory([match(IN), AuthFailure("expired")])
        with pytest.raises(AuthFailure):
            await SeasonAggregator(history).collect(PUUID, WINDOW)

    async def test_progress_callback(self):
        """Test progress is reported every 20 kept matches."""
        history = FakeHistory([match(IN)] * 45)
        progress = AsyncMock()

        await SeasonAggregator(history, progress_every=20).collect(PUUID, WINDOW, progress=progress)

        assert progress.await_count == 2
        last = progress.await_args.args[0]
        assert last.in_window == 40

    async def test_get_all_match_ids_for_window(self):
        """Test the ID-only variant returns in-window IDs."""
        history = FakeHistory([match(AFTER), match(IN), match(IN), match(BEFORE)])
        ids = await SeasonAggregator(history).get_all_match_ids_for_window(PUUID, WINDOW)
        assert ids == ["EUW1_1", "EUW1_2"]


class TestSummary:
    """Test the derived season summary."""

    def test_summarize(self):
        """Test wins, win rate, top champion and KDA of a summary."""
        records = [
            MatchRecord("a", 103, True, 10, 2, 5, IN),
            MatchRecord("b", 103, False, 2, 6, 4, IN),
            MatchRecord("c", 22, True, 6, 1, 9, IN),
        ]
        summary = summarize(records, WINDOW, skipped=1)

        assert summary.total_games == 3
        assert summary.wins == 2
        assert summary.win_rate == 67
        assert summary.top_champions[0] == {"champion_id": 103, "games": 2, "win_rate": 50}
        assert summary.kda["kda"] == 4.0
        assert summary.to_dict()["skipped"] == 1

    def test_empty_season(self):
        """Test a season without games summarizes to zeros."""
        summary = summarize([], WINDOW)
        assert summary.total_games == 0
        assert summary.win_rate == 0
        assert summary.top_champions == []


# ─── Bout en bout : client + cache + file d'attente, upstream simulé ─────────
def fake_upstream(matches):
    ids = [f"SG2_{i}" for i in range(len(matches))]
    details = dict(zip(ids, matches))

    async def send(url, secret, params):
        if "/riot/account/v1/accounts/by-riot-id/Name/TAG" in url:
            return Response(200, {}, {"puuid": PUUID, "gameName": "Name", "tagLine": "TAG"})
        if url.endswith(f"/lol/summoner/v4/summoners/by-puuid/{PUUID}"):
            return Response(200, {}, {"puuid": PUUID, "summonerLevel": 250})
        if url.endswith("/ids"):
            start = params["start"]
            return Response(200, {}, ids[start:start + params["count"]])
        return Response(200, {}, details[url.rsplit("/", 1)[1]])

    return send


def build_stack(tmp_path, fake_time, send):
    rotator = CredentialRotator([Credential("primary", "RGAPI-test")], clock=fake_time)
    monitor = UsageMonitor(None, clock=fake_time)
    scheduler = RequestScheduler(rotator, monitor, clock=fake_time, sleep=fake_time.sleep)
    scheduler._send = AsyncMock(side_effect=send)
    cache = DurableCache(tmp_path / "cache", clock=fake_time)
    return RiotClient(scheduler, cache, monitor, clock=fake_time), scheduler


@pytest.mark.asyncio
class TestEndToEnd:
    """Riot ID to season summary through the real client, cache and queue."""

    async def test_thirty_seven_of_a_hundred(self, tmp_path, fake_time):
        """Test a Riot ID resolves and 37 of 100 matches fall in the season."""
        matches = (
            [match(IN, win=i < 20, champion=103 if i % 2 else 22) for i in range(37)]
            + [match(BEFORE)] * 63
        )
        client, scheduler = build_stack(tmp_path, fake_time, fake_upstream(matches))

        summoner = await client.get_summoner_by_riot_id("Name#TAG")
        assert summoner["puuid"] == PUUID
        assert summoner["summonerLevel"] == 250

        aggregator = SeasonAggregator(client, early_stop_threshold=100)
        summary = await aggregator.rewind(summoner["puuid"], WINDOW)

        assert summary.total_games == 37
        assert summary.wins == 20
        assert summary.win_rate == 54
        listings = [c.args[2]["start"] for c in scheduler._send.call_args_list if c.args[0].endswith("/ids")]
        assert listings == [0, 100, 200]

    async def test_second_run_is_served_from_cache(self, tmp_path, fake_time):
        """Test a rerun makes no upstream call and gives the same summary."""
        matches = [match(IN, win=i % 3 == 0) for i in range(30)] + [match(BEFORE)] * 10
        client, scheduler = build_stack(tmp_path, fake_time, fake_upstream(matches))
        aggregator = SeasonAggregator(client)

        first = await aggregator.rewind(PUUID, WINDOW)
        calls = scheduler._send.call_count
        second = await aggregator.rewind(PUUID, WINDOW)

        assert scheduler._send.call_count == calls
        assert second.to_json() == first.to_json()
