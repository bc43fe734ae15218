from __future__ import annotations

import threading

from arena_server.shared.events import EventHub, EventKind


def test_publish_invokes_each_subscriber_once() -> None:
    hub = EventHub()
    seen = []
    hub.subscribe(EventKind.AFTER_GAME_TICK, seen.append)

    assert hub.publish(EventKind.AFTER_GAME_TICK, {"tick": 1}) == 1
    assert seen == [{"tick": 1}]


def test_events_are_routed_by_kind() -> None:
    hub = EventHub()
    ticks, joins = [], []
    hub.subscribe(EventKind.AFTER_GAME_TICK, ticks.append)
    hub.subscribe(EventKind.AFTER_NEW_PLAYER_JOIN, joins.append)

    hub.publish(EventKind.AFTER_NEW_PLAYER_JOIN, "alice")

    assert ticks == []
    assert joins == ["alice"]
    assert hub.publish(EventKind.AFTER_MESSAGE_RECEIVE, "nobody listens") == 0


def test_handlers_run_on_the_publishing_thread() -> None:
    hub = EventHub()
    threads = []
    hub.subscribe(EventKind.AFTER_GAME_TICK, lambda _: threads.append(threading.current_thread()))

    publisher = threading.Thread(target=hub.publish, args=(EventKind.AFTER_GAME_TICK, None))
    publisher.start()
    publisher.join()

    assert threads == [publisher]


def test_failing_handler_does_not_block_the_others(caplog) -> None:
    hub = EventHub()
    seen = []

    def broken(_):
        raise RuntimeError("handler exploded")

    hub.subscribe(EventKind.AFTER_MESSAGE_RECEIVE, broken)
    hub.subscribe(EventKind.AFTER_MESSAGE_RECEIVE, seen.append)

    assert hub.publish(EventKind.AFTER_MESSAGE_RECEIVE, "msg") == 2
    assert seen == ["msg"]
    assert any("handler exploded" in r.getMessage() for r in caplog.records)


def test_unsubscribe() -> None:
    hub = EventHub()
    seen = []
    hub.subscribe(EventKind.AFTER_GAME_TICK, seen.append)

    assert hub.unsubscribe(EventKind.AFTER_GAME_TICK, seen.append) is True
    assert hub.unsubscribe(EventKind.AFTER_GAME_TICK, seen.append) is False
    assert hub.subscriber_count(EventKind.AFTER_GAME_TICK) == 0

    hub.publish(EventKind.AFTER_GAME_TICK, 1)
    assert seen == []
