"""Feature Flags — tests for the settings-backed event gate."""

from engage.config import Settings
from engage.core.events import DomainEvent
from engage.infrastructure.feature_flags import build_event_gate


def _event(org):
    return DomainEvent(type="t", source="tests", data={}, organization_id=org)


def test_gate_enabled_by_default():
    gate = build_event_gate(Settings())
    assert gate(_event(1)) is True
    assert gate(_event(None)) is True


def test_global_switch_disables_everything():
    gate = build_event_gate(Settings(event_driven_communication=False))
    assert gate(_event(1)) is False
    assert gate(_event(None)) is False


def test_per_organization_switch():
    gate = build_event_gate(Settings(event_disabled_organizations=[7]))
    assert gate(_event(7)) is False
    assert gate(_event(8)) is True
    assert gate(_event(None)) is True
