"""Tests for the worker-side reference table."""

import threading

import pytest

from phantombridge.worker import ReferenceTable
from phantombridge.worker import UnknownReferenceError
from phantombridge.worker import owned_pages
from tests.fixtures.fake_page import FakeWebPage


def test_register_allocates_increasing_string_ids() -> None:
    """Each new value gets the next counter value as its identifier."""
    table: ReferenceTable = ReferenceTable()
    first: str = table.register(object())
    second: str = table.register(object())
    assert first == "1"
    assert second == "2"
    assert len(table) == 2


def test_register_same_value_twice_returns_same_id() -> None:
    """Registering one value again reuses its identifier."""
    table: ReferenceTable = ReferenceTable()
    page: FakeWebPage = FakeWebPage()
    first: str = table.register(page)
    second: str = table.register(page)
    assert first == second
    assert len(table) == 1
    assert table.lookup(first) is page


def test_equal_but_distinct_values_get_distinct_ids() -> None:
    """Deduplication is by identity, not equality."""
    table: ReferenceTable = ReferenceTable()
    first: str = table.register([1])
    second: str = table.register([1])
    assert first != second


def test_delete_removes_entry_so_lookup_fails() -> None:
    """A deleted identifier can no longer be resolved."""
    table: ReferenceTable = ReferenceTable()
    page: FakeWebPage = FakeWebPage()
    ref_id: str = table.register(page)

    removed: bool = table.delete(ref_id)
    assert removed is True
    assert ref_id not in table
    with pytest.raises(UnknownReferenceError, match="unknown reference"):
        table.lookup(ref_id)


def test_delete_absent_id_is_a_noop() -> None:
    """Deleting twice, or deleting something never registered, is not an error."""
    table: ReferenceTable = ReferenceTable()
    ref_id: str = table.register(FakeWebPage())
    assert table.delete(ref_id) is True
    assert table.delete(ref_id) is False
    assert table.delete("999") is False


def test_ids_are_not_reused_after_delete() -> None:
    """Re-registering a deleted value allocates a fresh identifier."""
    table: ReferenceTable = ReferenceTable()
    page: FakeWebPage = FakeWebPage()
    first: str = table.register(page)
    table.delete(first)
    second: str = table.register(page)
    assert second != first


def test_lookup_rejects_non_string_ids() -> None:
    """Only string identifiers resolve."""
    table: ReferenceTable = ReferenceTable()
    table.register(FakeWebPage())
    with pytest.raises(UnknownReferenceError):
        table.lookup(1)


def test_delete_recursive_removes_container_and_owned_entries() -> None:
    """Closing a container with N registered children removes N + 1 entries."""
    table: ReferenceTable = ReferenceTable()
    parent: FakeWebPage = FakeWebPage()
    children: list[FakeWebPage] = [FakeWebPage() for _ in range(3)]
    parent.pages.extend(children)
    unrelated: FakeWebPage = FakeWebPage()

    parent_id: str = table.register(parent)
    for child in children:
        table.register(child)
    table.register(unrelated)
    assert len(table) == 5

    reached: list[object] = table.delete_recursive(parent_id, owned_pages)
    assert len(table) == 1
    assert table.find(unrelated) is not None
    assert reached[-1] is parent
    assert len(reached) == 4


def test_delete_recursive_walks_grandchildren_and_skips_closed_children() -> None:
    """Children deleted independently beforehand are tolerated."""
    table: ReferenceTable = ReferenceTable()
    parent: FakeWebPage = FakeWebPage()
    child: FakeWebPage = FakeWebPage()
    grandchild: FakeWebPage = FakeWebPage()
    parent.pages.append(child)
    child.pages.append(grandchild)

    parent_id: str = table.register(parent)
    child_id: str = table.register(child)
    table.register(grandchild)
    table.delete(child_id)

    reached: list[object] = table.delete_recursive(parent_id, owned_pages)
    assert len(table) == 0
    assert reached == [grandchild, child, parent]


def test_delete_recursive_unknown_root_raises() -> None:
    """The container itself must exist."""
    table: ReferenceTable = ReferenceTable()
    with pytest.raises(UnknownReferenceError):
        table.delete_recursive("1", owned_pages)


def test_concurrent_registration_of_one_value_yields_one_id() -> None:
    """Racing registrations of the same value never allocate two entries."""
    table: ReferenceTable = ReferenceTable()
    page: FakeWebPage = FakeWebPage()
    results: list[str] = []
    results_lock: threading.Lock = threading.Lock()
    barrier: threading.Barrier = threading.Barrier(8)

    def register() -> None:
        """Register the shared page after all threads are ready."""
        barrier.wait()
        ref_id: str = table.register(page)
        with results_lock:
            results.append(ref_id)

    threads: list[threading.Thread] = [threading.Thread(target=register) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(set(results)) == 1
    assert len(table) == 1
