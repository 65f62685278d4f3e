import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from fakes import FakeBlobs, FakeNotifier, FakeStore


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def blobs():
    return FakeBlobs()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def threat(store):
    item = {
        "threatId": "t-1",
        "createdAt": "2024-05-01T10:00:00Z",
        "submittedBy": "owner-1",
        "artifact": "http://phish.example",
        "type": "url",
        "description": "Fake bank login",
        "status": "unverified",
        "likes": 0,
        "viewable": "THREATS",
    }
    store.seed("digital-threats", item)
    return item
