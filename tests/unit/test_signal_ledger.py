import asyncio

import pytest

from nudge.domain.matching.models import MatchType
from nudge.domain.proximity.models import Position
from nudge.domain.signals.exceptions import SelfSignalError
from nudge.domain.signals.ledger import SignalLedger
from nudge.domain.signals.models import InteractionKind, LocationContext, SignalKind
from nudge.obs import metrics as obs_metrics


@pytest.fixture
def ledger(clock):
    return SignalLedger(clock=clock)


@pytest.mark.asyncio
async def test_reciprocal_likes_emit_regular_candidate(ledger):
    assert await ledger.record_signal("alice", "bob", SignalKind.LIKE) is None
    event = await ledger.record_signal("bob", "alice", SignalKind.LIKE)
    assert event is not None
    assert event.actor_a == "alice"
    assert event.actor_b == "bob"
    assert event.match_type is MatchType.REGULAR
    await ledger.drain()


@pytest.mark.asyncio
async def test_reciprocal_nudges_emit_nudge_candidate(ledger):
    await ledger.record_signal("alice", "bob", "nudge")
    event = await ledger.record_signal("bob", "alice", "nudge")
    assert event is not None
    assert event.match_type is MatchType.NUDGE
    await ledger.drain()


@pytest.mark.asyncio
async def test_mixed_kinds_are_not_reciprocal(ledger):
    await ledger.record_signal("alice", "bob", SignalKind.LIKE)
    assert await ledger.record_signal("bob", "alice", SignalKind.NUDGE) is None
    await ledger.record_signal("carol", "dave", SignalKind.PASS)
    assert await ledger.record_signal("dave", "carol", SignalKind.PASS) is None
    await ledger.drain()


@pytest.mark.asyncio
async def test_pass_then_like_creates_no_candidate(ledger):
    await ledger.record_signal("alice", "carol", SignalKind.PASS)
    assert await ledger.record_signal("carol", "alice", SignalKind.LIKE) is None
    await ledger.drain()


@pytest.mark.asyncio
async def test_signals_are_append_only_and_duplicates_retained(ledger):
    for _ in range(3):
        await ledger.record_signal("alice", "bob", SignalKind.LIKE)
    await ledger.record_signal("alice", "bob", SignalKind.PASS)
    history = ledger.signals_between("alice", "bob")
    assert [s.kind for s in history] == [SignalKind.LIKE] * 3 + [SignalKind.PASS]
    assert [s.seq for s in history] == sorted(s.seq for s in history)
    assert len(ledger) == 4
    assert ledger.latest_signal("alice", "bob").kind is SignalKind.PASS
    assert ledger.passed_targets("alice") == {"bob"}
    await ledger.drain()


@pytest.mark.asyncio
async def test_like_after_pass_clears_suppression(ledger):
    await ledger.record_signal("alice", "bob", SignalKind.PASS)
    await ledger.record_signal("alice", "bob", SignalKind.LIKE)
    assert ledger.passed_targets("alice") == set()
    assert ledger.judged_targets("alice") == {"bob"}
    await ledger.drain()


@pytest.mark.asyncio
async def test_self_signal_rejected(ledger):
    with pytest.raises(SelfSignalError):
        await ledger.record_signal("alice", "alice", SignalKind.LIKE)
    assert len(ledger) == 0


@pytest.mark.asyncio
async def test_confirm_match_consumes_pending_signals(ledger):
    await ledger.record_signal("alice", "bob", SignalKind.NUDGE)
    assert ledger.has_signaled("alice", "bob", kinds={SignalKind.NUDGE})
    assert [s.from_actor for s in ledger.received_nudges("bob")] == ["alice"]

    await ledger.record_signal("bob", "alice", SignalKind.NUDGE)
    await ledger.confirm_match("alice", "bob")

    assert not ledger.has_signaled("alice", "bob", kinds={SignalKind.NUDGE})
    assert ledger.received_nudges("bob") == []
    assert len(ledger.received_nudges("bob", pending_only=False)) == 1
    # Consumed signals no longer complete a pair on their own.
    assert await ledger.record_signal("alice", "bob", SignalKind.NUDGE) is None
    assert await ledger.record_signal("bob", "alice", SignalKind.NUDGE) is not None
    await ledger.drain()


@pytest.mark.asyncio
async def test_nudge_context_counts_as_visit(ledger):
    spot = Position(45.5048, -73.5772)
    context = LocationContext(position=spot, venue_name="Library")
    await ledger.record_signal("alice", "bob", SignalKind.NUDGE, context)
    await ledger.record_signal("alice", "carol", SignalKind.NUDGE, LocationContext(position=Position(45.5050, -73.5772)))
    # Likes never carry location context.
    await ledger.record_signal("alice", "dave", SignalKind.LIKE, context)
    await ledger.drain()

    signal = ledger.latest_signal("alice", "bob")
    assert signal.location_context.venue_name == "Library"
    assert ledger.latest_signal("alice", "dave").location_context is None
    locations = ledger.get_profile("alice").frequent_locations
    assert len(locations) == 1
    assert locations[0].visit_count == 2
    assert locations[0].venue_name == "Library"


@pytest.mark.asyncio
async def test_record_visit_clusters_nearby_positions(ledger):
    await ledger.record_visit("alice", Position(0.0, 0.0))
    await ledger.record_visit("alice", Position(0.0, 0.0005))
    await ledger.record_visit("alice", Position(1.0, 1.0))
    locations = ledger.frequent_locations("alice")
    assert [loc.visit_count for loc in locations] == [2, 1]


@pytest.mark.asyncio
async def test_profile_created_on_first_signal(ledger):
    assert ledger.get_profile("alice") is None
    await ledger.track_interaction("alice", "bob", InteractionKind.VIEWED)
    await ledger.drain()
    assert ledger.get_profile("alice") is None
    await ledger.record_signal("alice", "bob", SignalKind.PASS)
    await ledger.drain()
    assert ledger.get_profile("alice") is not None
    assert ledger.get_profile("bob") is None


@pytest.mark.asyncio
async def test_affinity_update_rules(ledger):
    await ledger.record_signal("alice", "liked", SignalKind.LIKE)
    await ledger.record_signal("alice", "passed", SignalKind.PASS)
    await ledger.record_signal("alice", "nudged", SignalKind.NUDGE)
    await ledger.track_interaction("alice", "viewed", InteractionKind.VIEWED)
    await ledger.track_interaction("alice", "chatted", InteractionKind.MESSAGED)
    await ledger.drain()

    probabilities = ledger.get_profile("alice").match_probability
    assert probabilities["liked"] == pytest.approx(0.7)
    assert probabilities["passed"] == pytest.approx(0.2)
    assert probabilities["chatted"] == pytest.approx(0.6)
    # Nudges and views leave the prior untouched and create no entry.
    assert "nudged" not in probabilities
    assert "viewed" not in probabilities


@pytest.mark.asyncio
async def test_affinity_last_signal_wins(ledger):
    """last-signal-wins: the stored value is the latest computation, not an average."""
    for _ in range(4):
        await ledger.record_signal("alice", "bob", SignalKind.LIKE)
    await ledger.drain()
    assert ledger.get_profile("alice").probability_for("bob") == pytest.approx(1.0)

    await ledger.record_signal("alice", "bob", SignalKind.PASS)
    await ledger.drain()
    assert ledger.get_profile("alice").probability_for("bob") == pytest.approx(0.7)

    await ledger.record_signal("bob", "alice", SignalKind.LIKE)
    await ledger.confirm_match("alice", "bob")
    await ledger.drain()
    assert ledger.get_profile("alice").probability_for("bob") == pytest.approx(0.9)
    assert ledger.get_profile("bob").probability_for("alice") == pytest.approx(0.9)


@pytest.mark.asyncio
async def test_affinity_window_bounds_history(clock):
    ledger = SignalLedger(affinity_window=2, clock=clock)
    await ledger.record_signal("alice", "bob", SignalKind.PASS)
    await ledger.record_signal("alice", "bob", SignalKind.LIKE)
    await ledger.record_signal("alice", "bob", SignalKind.LIKE)
    await ledger.drain()
    # Only the two most recent likes are replayed from the prior.
    assert ledger.get_profile("alice").probability_for("bob") == pytest.approx(0.9)


@pytest.mark.asyncio
async def test_affinity_forgets_targets_outside_window(clock):
    ledger = SignalLedger(affinity_window=2, clock=clock)
    await ledger.record_signal("alice", "bob", SignalKind.LIKE)
    await ledger.drain()
    assert ledger.get_profile("alice").match_probability == {"bob": pytest.approx(0.7)}

    await ledger.record_signal("alice", "carol", SignalKind.LIKE)
    await ledger.record_signal("alice", "dave", SignalKind.LIKE)
    await ledger.drain()
    probabilities = ledger.get_profile("alice").match_probability
    assert set(probabilities) == {"carol", "dave"}
    assert ledger.get_profile("alice").probability_for("bob") == 0.0


@pytest.mark.asyncio
async def test_affinity_failure_never_fails_record(ledger, monkeypatch, caplog):
    def _boom(interactions):
        raise RuntimeError("scoring backend down")

    monkeypatch.setattr(ledger, "_compute_probabilities", _boom)
    before = obs_metrics.AFFINITY_UPDATES.labels(result="failed")._value.get()

    assert await ledger.record_signal("alice", "bob", SignalKind.LIKE) is None
    await ledger.drain()

    after = obs_metrics.AFFINITY_UPDATES.labels(result="failed")._value.get()
    assert after == before + 1
    assert "affinity update failed" in caplog.text
    assert ledger.get_profile("alice").match_probability == {}


@pytest.mark.asyncio
async def test_concurrent_reciprocal_signals_yield_one_candidate(ledger):
    results = await asyncio.gather(
        ledger.record_signal("alice", "bob", SignalKind.LIKE),
        ledger.record_signal("bob", "alice", SignalKind.LIKE),
    )
    assert sum(1 for event in results if event is not None) == 1
    await ledger.drain()
