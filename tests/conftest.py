"""
Shared fixtures.

Every fixture builds on an InMemoryStore and an InMemoryRemoteBackend,
so no test touches the network.
"""

import pytest

from finsync.notifications import Notifier, SessionState
from finsync.repositories import Repositories
from finsync.services.remote import InMemoryRemoteBackend
from finsync.store import InMemoryStore
from finsync.sync import MutationQueue, SyncEngine


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def notices():
    return []


@pytest.fixture
def notifier(notices):
    return Notifier(sink=notices.append, session=SessionState())


@pytest.fixture
def queue(store):
    return MutationQueue(store)


@pytest.fixture
def repositories(store, queue, notifier):
    return Repositories(store, queue, notifier)


@pytest.fixture
def remote():
    return InMemoryRemoteBackend(user_id="user-1")


@pytest.fixture
def engine(store, repositories, queue, remote, notifier):
    return SyncEngine(
        store,
        repositories,
        queue,
        remote,
        notifier=notifier,
        timeout_seconds=0.5,
        flush_on_write=False,
        failure_notice_threshold=2,
    )
