"""
Shared fixtures for the organ matching tests.

Every test gets a fresh in-memory store, a capturing notification sink
and a controllable clock.
"""

import pytest

from organ_matching.config import MatchingConfig
from organ_matching.core import Identity, InMemoryNotificationSink, MatchingService
from organ_matching.db import InMemoryRecordStore
from organ_matching.observability import get_metrics
from organ_matching.schemas import BloodType, DonorData, OrganType, RecipientData


START_TIME = 1_700_000_000


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics().reset()
    yield


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def sink():
    return InMemoryNotificationSink()


@pytest.fixture
def config():
    return MatchingConfig()


@pytest.fixture
def service(store, sink, config, clock):
    return MatchingService(store, sink=sink, config=config, clock=clock)


@pytest.fixture
def admin():
    return Identity.generate()


@pytest.fixture
def authority():
    return Identity.generate()


@pytest.fixture
def program(service, admin, authority):
    """A service with program state and one active medical authority."""
    service.initialize(admin)
    service.set_medical_authority(admin, authority, True)
    return service


@pytest.fixture
def recipient_data():
    """Factory for valid recipient submissions."""
    def make(**overrides) -> RecipientData:
        fields = {
            "medical_urgency": 80,
            "geographical_distance": 100,
            "hla_markers": [1, 1, 1, 1, 1],
            "blood_type": BloodType.O_NEGATIVE,
            "organ_type": OrganType.KIDNEY,
            "age": 15,
            "medical_notes": "",
        }
        fields.update(overrides)
        return RecipientData(**fields)
    return make


@pytest.fixture
def donor_data():
    """Factory for valid donor submissions."""
    def make(**overrides) -> DonorData:
        fields = {
            "hla_markers": [1, 1, 1, 1, 1],
            "blood_type": BloodType.O_NEGATIVE,
            "organ_type": OrganType.KIDNEY,
            "medical_notes": "",
        }
        fields.update(overrides)
        return DonorData(**fields)
    return make
