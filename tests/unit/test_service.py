import asyncio
from datetime import timedelta

import pytest

from nudge.domain.directory.models import ActorNotFound, DirectoryPreferences, DirectoryProfile
from nudge.domain.matching.events import QueueOutbox
from nudge.domain.matching.models import MatchType
from nudge.domain.proximity.exceptions import NotActive
from nudge.domain.proximity.models import Position
from nudge.domain.service import NudgeService
from nudge.domain.signals.models import SignalKind
from nudge.settings import settings

A_POS = {"latitude": 0.0, "longitude": 0.0}
B_POS = {"latitude": 0.0, "longitude": 0.00045}


@pytest.mark.asyncio
async def test_nudge_mode_end_to_end(service, clock, outbox):
    await service.activate_presence("A", A_POS, "f")
    await service.activate_presence("B", B_POS, "m")

    [seen] = await service.query_nearby("A", 50)
    assert seen.actor_id == "B"
    assert seen.distance_m == pytest.approx(50, abs=1)
    assert seen.has_signaled_you is False

    assert await service.record_signal("B", "A", SignalKind.NUDGE) is None
    [seen] = await service.query_nearby("A", 50)
    assert seen.has_signaled_you is True

    created = await service.record_signal("A", "B", SignalKind.NUDGE)
    assert created is not None
    match = created.match
    assert match.match_type is MatchType.NUDGE
    assert match.created_at == clock.now
    assert match.expires_at == clock.now + timedelta(hours=72)
    assert service.list_active_matches("A") == [match]
    assert service.list_active_matches("B") == [match]
    assert [event.match.id for event in outbox.drain()] == [match.id]

    # The reciprocal pair is consumed once matched.
    [seen] = await service.query_nearby("A", 50)
    assert seen.has_signaled_you is False


@pytest.mark.asyncio
async def test_pass_then_like_creates_no_match(service):
    assert await service.record_signal("A", "C", SignalKind.PASS) is None
    assert await service.record_signal("C", "A", SignalKind.LIKE) is None
    assert service.list_active_matches("A") == []
    assert service.list_active_matches("C") == []


@pytest.mark.asyncio
async def test_reciprocal_likes_create_exactly_one_regular_match(service):
    await service.record_signal("A", "B", SignalKind.LIKE)
    created = await service.record_signal("B", "A", SignalKind.LIKE)
    assert created is not None
    assert created.match.match_type is MatchType.REGULAR
    assert created.match.expires_at is None

    for _ in range(3):
        assert await service.record_signal("A", "B", SignalKind.LIKE) is None
        assert await service.record_signal("B", "A", SignalKind.LIKE) is None
    assert len(service.list_match_history("A")) == 1


@pytest.mark.asyncio
async def test_interleaved_reciprocal_signals_yield_one_match(service):
    results = await asyncio.gather(
        service.record_signal("A", "B", SignalKind.LIKE),
        service.record_signal("B", "A", SignalKind.LIKE),
        service.record_signal("A", "B", SignalKind.LIKE),
        service.record_signal("B", "A", SignalKind.LIKE),
    )
    assert sum(1 for created in results if created is not None) == 1
    assert len(service.list_active_matches("A")) == 1


@pytest.mark.asyncio
async def test_expired_nudge_match_needs_fresh_nudges(service, clock):
    await service.record_signal("A", "B", SignalKind.NUDGE)
    first = await service.record_signal("B", "A", SignalKind.NUDGE)
    clock.advance(hours=73)
    assert service.list_active_matches("A") == []
    assert [m.id for m in service.list_match_history("A")] == [first.match.id]

    assert await service.record_signal("A", "B", SignalKind.NUDGE) is None
    second = await service.record_signal("B", "A", SignalKind.NUDGE)
    assert second is not None and second.match.id != first.match.id


@pytest.mark.asyncio
async def test_nudge_attaches_sender_location(service):
    await service.activate_presence("A", A_POS, "f")
    await service.activate_presence("B", B_POS, "m")
    await service.record_signal("A", "B", SignalKind.NUDGE)

    [nudge] = service.received_nudges("B")
    assert nudge.location_context.position == Position(0.0, 0.0)
    assert nudge.location_context.distance_m == pytest.approx(50, abs=1)

    # Inactive senders nudge without context.
    await service.record_signal("C", "B", SignalKind.NUDGE)
    assert service.received_nudges("B")[0].location_context is None


@pytest.mark.asyncio
async def test_nearby_hides_passed_actors_and_applies_directory_filter(service, directory):
    directory.upsert(
        DirectoryProfile(
            actor_id="A",
            age=30,
            gender="f",
            preferences=DirectoryPreferences(interested_in=frozenset({"m"})),
        )
    )
    await service.activate_presence("A", A_POS, "F")
    await service.activate_presence("B", {"latitude": 0.0, "longitude": 0.0001}, "M")
    await service.activate_presence("C", {"latitude": 0.0, "longitude": 0.0002}, "m")
    await service.activate_presence("D", {"latitude": 0.0, "longitude": 0.0003}, "f")

    assert [c.actor_id for c in await service.query_nearby("A", 50)] == ["B", "C"]
    assert [c.actor_id for c in await service.query_nearby("A", 50, ["F"])] == ["D"]

    await service.record_signal("A", "B", SignalKind.PASS)
    assert [c.actor_id for c in await service.query_nearby("A", 50)] == ["C"]


@pytest.mark.asyncio
async def test_deactivated_actor_cannot_query(service):
    await service.activate_presence("A", A_POS, "f")
    await service.deactivate_presence("A")
    await service.deactivate_presence("A")
    with pytest.raises(NotActive):
        await service.query_nearby("A", 50)


@pytest.mark.asyncio
async def test_rank_candidates_uses_stored_affinity(service, directory, clock):
    for actor_id, lon in (("me", 0.0), ("x", 0.05), ("y", 0.01), ("z", 0.001)):
        directory.upsert(
            DirectoryProfile(
                actor_id=actor_id,
                age=30,
                gender="m",
                last_active=clock.now - timedelta(days=2),
                approximate_location=Position(0.0, lon),
            )
        )
    # No profile yet: seeded shuffle fallback.
    fallback = await service.rank_candidates("me", ["x", "y", "z"], seed=3)
    assert sorted(fallback) == ["x", "y", "z"]
    assert fallback == await service.rank_candidates("me", ["x", "y", "z"], seed=3)

    await service.record_signal("me", "x", SignalKind.LIKE)
    await service.record_signal("me", "y", SignalKind.PASS)
    await service.ledger.drain()

    ordered = await service.rank_candidates("me", ["y", "z", "x", "me", "z"])
    # x: 0.28 + 0.133, y: 0.08 + 0.267, z: 0.0 + 0.297
    assert ordered == ["x", "y", "z"]


@pytest.mark.asyncio
async def test_discovery_feed_filters_and_ranks(service, directory, clock):
    prefs = DirectoryPreferences(min_age=25, max_age=35, max_distance_km=5, interested_in=frozenset({"m"}))
    directory.upsert(DirectoryProfile("me", age=29, gender="f", preferences=prefs, approximate_location=Position(0.0, 0.0)))
    directory.upsert(DirectoryProfile("near", age=30, gender="m", approximate_location=Position(0.0, 0.001)))
    directory.upsert(DirectoryProfile("mid", age=31, gender="m", approximate_location=Position(0.0, 0.02)))
    directory.upsert(DirectoryProfile("far", age=30, gender="m", approximate_location=Position(0.0, 1.0)))
    directory.upsert(DirectoryProfile("old", age=60, gender="m", approximate_location=Position(0.0, 0.001)))
    directory.upsert(DirectoryProfile("woman", age=30, gender="f", approximate_location=Position(0.0, 0.001)))
    directory.upsert(DirectoryProfile("nowhere", age=30, gender="m"))
    directory.upsert(DirectoryProfile("judged", age=30, gender="m", approximate_location=Position(0.0, 0.001)))

    await service.record_signal("me", "judged", SignalKind.PASS)
    await service.ledger.drain()

    feed = await service.discovery_feed("me")
    assert [item.actor_id for item in feed] == ["near", "mid"]
    assert feed[0].distance_m == pytest.approx(111.2, abs=0.5)

    with pytest.raises(ActorNotFound):
        await service.discovery_feed("stranger")


@pytest.mark.asyncio
async def test_reciprocal_nudges_on_matched_pair_are_answered(service):
    await service.activate_presence("alice", A_POS, "f")
    await service.activate_presence("bob", B_POS, "m")
    await service.record_signal("alice", "bob", SignalKind.LIKE)
    regular = await service.record_signal("bob", "alice", SignalKind.LIKE)

    await service.record_signal("bob", "alice", SignalKind.NUDGE)
    assert await service.record_signal("alice", "bob", SignalKind.NUDGE) is None

    # Both nudges resolved to the existing match, so neither is still pending.
    assert service.list_active_matches("alice") == [regular.match]
    assert service.received_nudges("alice") == []
    assert service.received_nudges("bob") == []
    [seen] = await service.query_nearby("alice", 50)
    assert seen.has_signaled_you is False


async def _match_pairs(svc: NudgeService, count: int) -> None:
    for index in range(count):
        await svc.record_signal("hub", f"peer{index}", SignalKind.LIKE)
        await svc.record_signal(f"peer{index}", "hub", SignalKind.LIKE)


@pytest.mark.asyncio
async def test_default_outbox_is_bounded(monkeypatch, clock, directory):
    monkeypatch.setattr(settings, "events_outbox_maxsize", 3)
    svc = NudgeService.build(settings, directory=directory, clock=clock)
    try:
        assert isinstance(svc.outbox, QueueOutbox)
        await _match_pairs(svc, 5)
        events = svc.outbox.drain()
        # Oldest events are dropped once the outbox is full.
        assert [event.match.other("hub") for event in events] == ["peer2", "peer3", "peer4"]
    finally:
        await svc.close()


@pytest.mark.asyncio
async def test_redis_events_skip_the_in_process_outbox(monkeypatch, clock, directory, fake_redis):
    monkeypatch.setattr(settings, "events_redis_enabled", True)
    svc = NudgeService.build(settings, directory=directory, clock=clock)
    try:
        assert svc.outbox is None
        await _match_pairs(svc, 2)
        assert len(await fake_redis.xrange(settings.events_stream)) == 2
    finally:
        await svc.close()
