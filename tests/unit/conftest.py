"""Shared test fixtures."""

import pytest

from notenest.core.store import NotesStore
from notenest.models.card import BulletBlock, BulletItem, Card, TextBlock
from tests.unit.fakes import FakeClock, FakeStorage, SequentialIds, Tree, make_card


@pytest.fixture
def forest() -> tuple[Card, ...]:
    """Two top-level cards: a (with b, which has c) and d (with e)."""
    return (
        make_card("a", make_card("b", make_card("c"))),
        make_card(
            "d",
            make_card(
                "e",
                blocks=(
                    TextBlock(id="t1", content="Groceries for the weekend"),
                    BulletBlock(id="b1", items=(BulletItem(id="i1", content="Milk"),)),
                ),
            ),
        ),
    )


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def store(storage: FakeStorage) -> NotesStore:
    return NotesStore(storage, clock=FakeClock(), id_factory=SequentialIds())


@pytest.fixture
def populated(store: NotesStore) -> Tree:
    """Work > Project > Task, plus Home, all created through the store."""
    work = store.add_card("Work")
    project = store.add_card("Project", work)
    task = store.add_card("Task", project)
    home = store.add_card("Home")
    return Tree(work=work, project=project, task=task, home=home)
