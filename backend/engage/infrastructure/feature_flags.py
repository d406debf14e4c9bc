"""Feature Flags — settings-backed switches evaluated per organization.

Invariants:
    - event_driven_communication=False disables event dispatch everywhere
    - Organizations in event_disabled_organizations are disabled individually
    - Events without an organization follow the global switch only
"""

from engage.config import Settings
from engage.core.events import DomainEvent


def build_event_gate(settings: Settings):
    """Return the gate EventSystem consults before dispatching an event."""
    disabled = frozenset(settings.event_disabled_organizations)

    def gate(event: DomainEvent) -> bool:
        if not settings.event_driven_communication:
            return False
        return event.organization_id not in disabled

    return gate
