import logging
from datetime import datetime, timezone

import pytest

from uploader.app.collaborators import (
    InMemoryHandleRegistry,
    InMemoryHistoryStore,
    LoggingNotifier,
    MemoryNotifier,
    Severity,
    UnknownHandleError,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_handles_are_unique_and_resolvable():
    registry = InMemoryHandleRegistry()

    first = registry.create_handle(b"one")
    second = registry.create_handle(b"one")

    assert first != second
    assert first.startswith("blob:pdf-signer/")
    assert registry.resolve(first) == b"one"
    assert registry.live_handles == {first, second}


def test_releasing_twice_is_an_error():
    registry = InMemoryHandleRegistry()
    handle = registry.create_handle(b"x")

    registry.release_handle(handle)

    with pytest.raises(UnknownHandleError):
        registry.release_handle(handle)
    with pytest.raises(UnknownHandleError):
        registry.resolve(handle)
    assert (registry.created, registry.released) == (1, 1)


def test_history_keeps_insertion_order():
    registry = InMemoryHandleRegistry()
    store = InMemoryHistoryStore(registry)

    store.record("signed-a.pdf", NOW, registry.create_handle(b"a"))
    store.record("signed-b.pdf", NOW, registry.create_handle(b"b"))

    assert [e.name for e in store.entries()] == ["signed-a.pdf", "signed-b.pdf"]
    assert len(store) == 2


def test_history_remove_releases_handle():
    registry = InMemoryHandleRegistry()
    store = InMemoryHistoryStore(registry)
    store.record("signed-a.pdf", NOW, registry.create_handle(b"a"))
    (entry,) = store.entries()

    assert store.remove(entry.id) is True
    assert store.remove(entry.id) is False
    assert registry.live_handles == frozenset()


def test_history_clear_releases_all():
    registry = InMemoryHandleRegistry()
    store = InMemoryHistoryStore(registry)
    for name in ("a", "b", "c"):
        store.record(f"signed-{name}.pdf", NOW, registry.create_handle(b"x"))

    store.clear()

    assert len(store) == 0
    assert registry.live_handles == frozenset()


def test_memory_notifier_drain():
    notifier = MemoryNotifier()
    notifier.notify(Severity.INFO, "hello")

    assert notifier.drain() == [(Severity.INFO, "hello")]
    assert notifier.messages == []


def test_logging_notifier_maps_severity(caplog):
    notifier = LoggingNotifier(logging.getLogger("uploader.test"))

    with caplog.at_level(logging.INFO, logger="uploader.test"):
        notifier.notify(Severity.SUCCESS, "PDF signed successfully!")
        notifier.notify(Severity.WARNING, "File is password protected.")

    assert [(r.levelno, r.getMessage()) for r in caplog.records] == [
        (logging.INFO, "PDF signed successfully!"),
        (logging.WARNING, "File is password protected."),
    ]
    assert caplog.records[0].severity == "success"
