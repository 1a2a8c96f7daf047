from datetime import datetime, timedelta, timezone

import pytest

from neighborcare.errors import NotFoundError
from neighborcare.models.domain import Coordinate
from neighborcare.persistence.memory import InMemoryResponderRepository
from neighborcare.services.directory import ResponderDirectory

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def directory() -> ResponderDirectory:
    return ResponderDirectory(InMemoryResponderRepository(), clock=lambda: T0)


def test_register_is_idempotent(directory: ResponderDirectory):
    first = directory.register("R1", coordinate=Coordinate(1.0, 2.0))
    second = directory.register("R1", coordinate=Coordinate(5.0, 5.0))

    assert second == first
    assert directory.get("R1").coordinate == Coordinate(1.0, 2.0)
    assert first.last_updated == T0


def test_unknown_responder_raises_not_found(directory: ResponderDirectory):
    with pytest.raises(NotFoundError):
        directory.set_availability("ghost", True)
    with pytest.raises(NotFoundError):
        directory.update_location("ghost", Coordinate(0.0, 0.0))
    with pytest.raises(NotFoundError):
        directory.get("ghost")


def test_list_available_requires_flag_and_position(directory: ResponderDirectory):
    directory.register("no-fix")
    directory.set_availability("no-fix", True)
    directory.register("off-duty", coordinate=Coordinate(1.0, 1.0))
    directory.register("ready", coordinate=Coordinate(1.0, 1.0))
    directory.set_availability("ready", True)

    assert [responder.id for responder in directory.list_available()] == ["ready"]


def test_set_availability_with_coordinate_updates_position(directory: ResponderDirectory):
    directory.register("R1")
    responder = directory.set_availability("R1", True, Coordinate(3.0, 4.0), observed_at=T0)

    assert responder.available is True
    assert responder.coordinate == Coordinate(3.0, 4.0)
    assert responder.last_updated == T0


def test_update_location_keeps_availability(directory: ResponderDirectory):
    directory.register("R1")
    directory.set_availability("R1", True)

    assert directory.update_location("R1", Coordinate(1.5, 1.5), observed_at=T0) is True
    responder = directory.get("R1")
    assert responder.available is True
    assert responder.coordinate == Coordinate(1.5, 1.5)


def test_stale_position_does_not_overwrite_fresher_one(directory: ResponderDirectory):
    directory.register("R1")
    directory.update_location("R1", Coordinate(2.0, 2.0), observed_at=T0 + timedelta(seconds=10))

    assert directory.update_location("R1", Coordinate(1.0, 1.0), observed_at=T0) is False
    responder = directory.get("R1")
    assert responder.coordinate == Coordinate(2.0, 2.0)
    assert responder.last_updated == T0 + timedelta(seconds=10)


def test_record_completed_mission_increments_counter(directory: ResponderDirectory):
    directory.register("R1")
    directory.record_completed_mission("R1")
    assert directory.record_completed_mission("R1").completed_missions == 2


def test_naive_report_time_is_treated_as_utc():
    directory = ResponderDirectory(InMemoryResponderRepository())
    directory.register("R1")

    assert directory.update_location("R1", Coordinate(1.0, 1.0), datetime(2030, 1, 1, 12, 0)) is True
    assert directory.get("R1").last_updated == datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert directory.update_location("R1", Coordinate(2.0, 2.0), datetime(2030, 1, 1, 11, 0)) is False
