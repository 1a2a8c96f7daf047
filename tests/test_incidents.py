import threading

import pytest

from neighborcare.errors import AlreadyAcceptedError, InvalidStateError, NotFoundError, ResponderBusyError
from neighborcare.models.domain import (
    RESPONDERS_AVAILABLE_CHANNEL,
    AlertStatus,
    IncidentStatus,
    IncidentType,
)
from neighborcare.services.core import DispatchCore

from helpers import ORIGIN, make_core, north_of


@pytest.fixture
def core() -> DispatchCore:
    core = make_core()
    yield core
    core.close()


def _responder(core: DispatchCore, responder_id: str, meters: float) -> None:
    core.directory.register(responder_id, coordinate=north_of(ORIGIN, meters))
    core.set_availability(responder_id, True)


def _statuses(core: DispatchCore, incident_id: str) -> dict[str, AlertStatus]:
    return {alert.responder_id: alert.status for alert in core.incidents.list_alerts(incident_id)}


def test_create_incident_alerts_matched_responders(core: DispatchCore):
    _responder(core, "R1", 100)
    _responder(core, "R2", 300)
    _responder(core, "far", 2000)

    result = core.incidents.create_incident(ORIGIN, IncidentType.CARDIAC, requester_id="U1")

    assert result.incident.status is IncidentStatus.PENDING
    assert result.incident.accepted_responder_id is None
    assert result.radius_used == 500
    assert result.notify_count == 2
    assert _statuses(core, result.incident.id) == {"R1": AlertStatus.PENDING, "R2": AlertStatus.PENDING}


def test_create_incident_without_coverage_leaves_it_pending(core: DispatchCore):
    result = core.incidents.create_incident(ORIGIN, IncidentType.MEDICAL)

    assert result.alerts == []
    assert result.radius_used == 1000
    assert core.incidents.get_incident(result.incident.id).status is IncidentStatus.PENDING


def test_accept_supersedes_other_pending_alerts(core: DispatchCore):
    for responder_id, meters in (("R1", 100), ("R2", 200), ("R3", 300)):
        _responder(core, responder_id, meters)
    incident = core.incidents.create_incident(ORIGIN, IncidentType.ACCIDENT).incident
    core.incidents.decline_incident(incident.id, "R3")

    accepted = core.incidents.accept_incident(incident.id, "R2")

    assert accepted.status is IncidentStatus.ACCEPTED
    assert accepted.accepted_responder_id == "R2"
    assert _statuses(core, incident.id) == {
        "R1": AlertStatus.SUPERSEDED,
        "R2": AlertStatus.ACCEPTED,
        "R3": AlertStatus.DECLINED,
    }


def test_concurrent_accepts_have_exactly_one_winner(core: DispatchCore):
    for responder_id, meters in (("R1", 100), ("R2", 200), ("R3", 300)):
        _responder(core, responder_id, meters)
    incident = core.incidents.create_incident(ORIGIN, IncidentType.CARDIAC).incident

    barrier = threading.Barrier(2)
    outcomes: dict[str, object] = {}

    def attempt(responder_id: str) -> None:
        barrier.wait()
        try:
            outcomes[responder_id] = core.incidents.accept_incident(incident.id, responder_id)
        except AlreadyAcceptedError as exc:
            outcomes[responder_id] = exc

    threads = [threading.Thread(target=attempt, args=(rid,)) for rid in ("R1", "R2")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    failures = [value for value in outcomes.values() if isinstance(value, AlreadyAcceptedError)]
    winners = [rid for rid, value in outcomes.items() if not isinstance(value, Exception)]
    assert len(winners) == 1
    assert len(failures) == 1
    assert failures[0].current_status == "accepted"

    statuses = _statuses(core, incident.id)
    loser = "R2" if winners[0] == "R1" else "R1"
    assert statuses[winners[0]] is AlertStatus.ACCEPTED
    assert statuses[loser] is AlertStatus.SUPERSEDED
    assert statuses["R3"] is AlertStatus.SUPERSEDED
    assert core.incidents.get_incident(incident.id).accepted_responder_id == winners[0]


def test_accept_requires_a_pending_alert(core: DispatchCore):
    _responder(core, "R1", 100)
    incident = core.incidents.create_incident(ORIGIN, IncidentType.OTHER).incident

    with pytest.raises(NotFoundError):
        core.incidents.accept_incident(incident.id, "never-notified")

    core.incidents.decline_incident(incident.id, "R1")
    with pytest.raises(NotFoundError):
        core.incidents.accept_incident(incident.id, "R1")

    with pytest.raises(NotFoundError):
        core.incidents.accept_incident("missing", "R1")


def test_accept_after_acceptance_reports_already_accepted(core: DispatchCore):
    _responder(core, "R1", 100)
    incident = core.incidents.create_incident(ORIGIN, IncidentType.OTHER).incident
    core.incidents.accept_incident(incident.id, "R1")

    with pytest.raises(AlreadyAcceptedError) as excinfo:
        core.incidents.accept_incident(incident.id, "R1")
    assert excinfo.value.current_status == "accepted"


def test_write_once_responder_assignment_is_enforced_by_the_incident(core: DispatchCore):
    _responder(core, "R1", 100)
    incident = core.incidents.create_incident(ORIGIN, IncidentType.OTHER).incident
    accepted = core.incidents.accept_incident(incident.id, "R1")

    with pytest.raises(InvalidStateError):
        accepted.accepted_by("R2", accepted.created_at)


def test_decline_is_idempotent(core: DispatchCore):
    _responder(core, "R1", 100)
    incident = core.incidents.create_incident(ORIGIN, IncidentType.OTHER).incident

    assert core.incidents.decline_incident(incident.id, "R1") is True
    assert core.incidents.decline_incident(incident.id, "R1") is False
    assert core.incidents.decline_incident(incident.id, "unknown") is False
    assert core.incidents.get_incident(incident.id).status is IncidentStatus.PENDING


def test_resolve_lifecycle_is_monotonic(core: DispatchCore):
    _responder(core, "R1", 100)
    incident = core.incidents.create_incident(ORIGIN, IncidentType.CARDIAC).incident

    with pytest.raises(InvalidStateError) as excinfo:
        core.incidents.resolve_incident(incident.id)
    assert excinfo.value.current_status == "pending"

    core.incidents.accept_incident(incident.id, "R1")
    resolved = core.incidents.resolve_incident(incident.id)
    assert resolved.status is IncidentStatus.RESOLVED
    assert resolved.resolved_at is not None

    with pytest.raises(InvalidStateError) as excinfo:
        core.incidents.resolve_incident(incident.id)
    assert excinfo.value.current_status == "resolved"
    assert core.directory.get("R1").completed_missions == 1


def test_cancel_only_for_incidents_without_alerts(core: DispatchCore):
    lonely = core.incidents.create_incident(ORIGIN, IncidentType.OTHER).incident
    cancelled = core.incidents.cancel_incident(lonely.id)
    assert cancelled.status is IncidentStatus.RESOLVED
    assert cancelled.cancelled is True

    _responder(core, "R1", 100)
    alerted = core.incidents.create_incident(ORIGIN, IncidentType.OTHER).incident
    with pytest.raises(InvalidStateError):
        core.incidents.cancel_incident(alerted.id)


def test_relay_events_follow_the_lifecycle(core: DispatchCore):
    _responder(core, "R1", 100)
    _responder(core, "R2", 200)
    requester = core.relay.connect("U1")
    alerted = core.relay.connect("R1")
    other = core.relay.connect("R2")
    bystander = core.relay.connect("R-late")

    incident = core.incidents.create_incident(ORIGIN, IncidentType.CARDIAC, requester_id="U1").incident

    alert_events = alerted.drain()
    assert [event["event"] for event in alert_events] == ["incident_alert"]
    assert alert_events[0]["channel"] == RESPONDERS_AVAILABLE_CHANNEL
    assert alert_events[0]["data"]["incident_id"] == incident.id
    assert [event["data"]["responder_id"] for event in other.drain()] == ["R2"]
    assert bystander.drain() == []

    core.incidents.accept_incident(incident.id, "R1")
    core.incidents.resolve_incident(incident.id)

    assert [event["event"] for event in requester.drain()] == ["responder_accepted", "incident_resolved"]
    assert [event["event"] for event in alerted.drain()] == ["responder_accepted", "incident_resolved"]
    assert other.drain() == []
    assert core.relay.subscriber_count(incident.channel) == 0


def test_list_incidents_filters_by_requester(core: DispatchCore):
    core.incidents.create_incident(ORIGIN, IncidentType.OTHER, requester_id="U1")
    core.incidents.create_incident(ORIGIN, IncidentType.OTHER, requester_id="U2")

    mine = core.incidents.list_incidents(requester_id="U1")

    assert [incident.requester_id for incident in mine] == ["U1"]
    assert len(core.incidents.list_incidents(status=IncidentStatus.PENDING)) == 2


def test_responder_holds_one_incident_at_a_time(core: DispatchCore):
    _responder(core, "R1", 100)
    first = core.incidents.create_incident(ORIGIN, IncidentType.MEDICAL).incident
    second = core.incidents.create_incident(ORIGIN, IncidentType.ACCIDENT).incident
    core.incidents.accept_incident(first.id, "R1")

    with pytest.raises(ResponderBusyError) as excinfo:
        core.incidents.accept_incident(second.id, "R1")
    assert excinfo.value.active_incident_id == first.id
    assert core.incidents.get_incident(second.id).status is IncidentStatus.PENDING
    assert _statuses(core, second.id) == {"R1": AlertStatus.PENDING}

    core.incidents.resolve_incident(first.id)
    assert core.incidents.accept_incident(second.id, "R1").accepted_responder_id == "R1"
