"""LogStream: merged, live-updating love log over the in-memory store."""

import threading

from lovesignal.application import ByIdentity, ByUsername, LogEntry, SignalPatch
from lovesignal.application.dto import UNKNOWN_USERNAME
from lovesignal.application.ports import SIGNALS, Change, where
from lovesignal.domain import SignalDirection


def test_initial_snapshot_merges_and_sorts_newest_first(ledger, alice, bob, carol) -> None:
    ledger.send_signal(alice.identity_id, ByUsername("bob"), "first", "praise")
    ledger.send_signal(bob.identity_id, ByUsername("alice"), "second", "help")
    ledger.send_signal(alice.identity_id, ByUsername("carol"), "third", "gift")
    ledger.send_signal(bob.identity_id, ByUsername("carol"), "not mine", "gift")

    emissions: list[list[LogEntry]] = []
    stream = ledger.stream_logs(alice.identity_id, emissions.append)

    assert len(emissions) == 1
    entries = emissions[0]
    assert [e.message for e in entries] == ["third", "second", "first"]
    assert [e.direction for e in entries] == [
        SignalDirection.SENT,
        SignalDirection.RECEIVED,
        SignalDirection.SENT,
    ]
    assert [e.counterpart_username for e in entries] == ["carol", "bob", "bob"]
    assert stream.entries == entries
    stream.unsubscribe()


def test_live_insert_update_delete(ledger, alice, bob) -> None:
    emissions: list[list[LogEntry]] = []
    stream = ledger.stream_logs(alice.identity_id, emissions.append)
    assert emissions == [[]]

    sent = ledger.send_signal(alice.identity_id, ByUsername("bob"), "hi", "praise")
    assert [e.signal_id for e in emissions[-1]] == [sent.signal_id]

    received = ledger.send_signal(bob.identity_id, ByUsername("alice"), "back", "help")
    assert [e.signal_id for e in emissions[-1]] == [received.signal_id, sent.signal_id]

    ledger.edit_signal(sent.signal_id, alice.identity_id, SignalPatch(message="hello"))
    assert {e.signal_id: e.message for e in emissions[-1]}[sent.signal_id] == "hello"

    ledger.delete_signal(received.signal_id, alice.identity_id)
    assert len(emissions[-1]) == 2

    ledger.delete_signal(received.signal_id, bob.identity_id)
    assert [e.signal_id for e in emissions[-1]] == [sent.signal_id]
    stream.unsubscribe()


def test_delete_by_sender_removes_entry(ledger, alice, bob) -> None:
    received = ledger.send_signal(bob.identity_id, ByUsername("alice"), "back", "help")
    with ledger.stream_logs(alice.identity_id) as stream:
        assert len(stream.entries) == 1
        ledger.delete_signal(received.signal_id, bob.identity_id)
        assert stream.entries == []


def test_length_equals_sent_plus_received(ledger, alice, bob, carol) -> None:
    with ledger.stream_logs(alice.identity_id) as stream:
        for _ in range(3):
            ledger.send_signal(alice.identity_id, ByUsername("bob"), "x", "praise")
        for _ in range(2):
            ledger.send_signal(carol.identity_id, ByUsername("alice"), "y", "gift")
        ledger.send_signal(bob.identity_id, ByUsername("carol"), "z", "gift")

        counts = stream.counts()
        assert (counts.sent, counts.received) == (3, 2)
        assert len(stream.entries) == counts.total
        assert counts == ledger.counts(alice.identity_id)
        assert stream.love_index() == ledger.love_index(alice.identity_id)
        assert stream.breakdown() == ledger.compute_report_breakdown(alice.identity_id)


def test_retargeted_signal_leaves_previous_recipient_log(ledger, alice, bob, carol) -> None:
    sent = ledger.send_signal(alice.identity_id, ByUsername("bob"), "hi", "praise")
    with ledger.stream_logs(bob.identity_id) as bob_stream:
        assert len(bob_stream.entries) == 1
        ledger.edit_signal(
            sent.signal_id, alice.identity_id, SignalPatch(recipient_id=carol.identity_id)
        )
        assert bob_stream.entries == []


def test_unknown_counterpart_uses_placeholder(ledger, alice) -> None:
    ledger.send_signal(alice.identity_id, ByIdentity("anon-1"), "hi", "praise")
    with ledger.stream_logs(alice.identity_id) as stream:
        assert stream.entries[0].counterpart_username == UNKNOWN_USERNAME


def test_unsubscribe_stops_updates_and_releases_listeners(store, ledger, alice, bob) -> None:
    emissions: list[list[LogEntry]] = []
    stream = ledger.stream_logs(alice.identity_id, emissions.append)
    assert store.listener_count == 2
    assert stream.active

    stream.unsubscribe()
    stream.unsubscribe()
    assert not stream.active
    assert store.listener_count == 0

    ledger.send_signal(alice.identity_id, ByUsername("bob"), "hi", "praise")
    assert len(emissions) == 1


def test_delete_racing_a_slow_edit_stays_deleted(store, ledger, alice, bob) -> None:
    sent = ledger.send_signal(alice.identity_id, ByUsername("bob"), "hi", "praise")
    in_edit = threading.Event()
    release = threading.Event()

    def slow_on_modify(change: Change) -> None:
        if change.kind == "modified":
            in_edit.set()
            release.wait(timeout=5)

    # Registered first, so it holds up the edit before the stream sees it.
    store.subscribe(SIGNALS, where(), slow_on_modify)
    stream = ledger.stream_logs(alice.identity_id)
    editor = threading.Thread(
        target=ledger.edit_signal,
        args=(sent.signal_id, alice.identity_id, SignalPatch(message="edited")),
    )
    editor.start()
    assert in_edit.wait(timeout=5)

    deleter = threading.Thread(
        target=ledger.delete_signal, args=(sent.signal_id, alice.identity_id)
    )
    deleter.start()
    deleter.join(timeout=5)
    release.set()
    editor.join(timeout=5)

    assert stream.entries == []
    stream.unsubscribe()
