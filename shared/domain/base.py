"""
Base Domain Classes

This module provides the foundational building blocks shared by the domain apps:
- DomainEvent: Events that represent something that happened
- EventRecorder: Mixin for aggregate roots (Django models) that record domain events
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List
from uuid import UUID, uuid4

from django.utils import timezone


@dataclass
class DomainEvent:
    """
    Base class for domain events

    Domain events represent something that happened in the domain.
    They are published on the message bus after the transaction that
    produced them has committed.
    """
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=timezone.now)
    aggregate_id: Any = None

    def to_dict(self) -> dict:
        """Convert event to dictionary for serialization"""
        return {
            'event_id': str(self.event_id),
            'event_type': self.__class__.__name__,
            'occurred_at': self.occurred_at.isoformat(),
            'aggregate_id': str(self.aggregate_id) if self.aggregate_id else None,
        }


class EventRecorder:
    """
    Mixin for aggregate roots

    Aggregates are the consistency boundaries. They collect domain events
    that the unit of work publishes after a successful commit. The mixin
    works on Django models, so the event list is created lazily instead of
    in ``__init__``.
    """

    def _event_buffer(self) -> List[DomainEvent]:
        events = self.__dict__.get('_domain_events')
        if events is None:
            events = []
            self.__dict__['_domain_events'] = events
        return events

    def add_event(self, event: DomainEvent):
        """Add a domain event to be published"""
        self._event_buffer().append(event)

    def clear_events(self):
        """Clear all collected events (called after collection)"""
        self._event_buffer().clear()

    @property
    def pending_events(self) -> List[DomainEvent]:
        """Get copy of collected events"""
        return list(self._event_buffer())
