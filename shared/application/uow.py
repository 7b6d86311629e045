"""
Unit of Work Pattern

Wraps a state change in one database transaction and publishes the
domain events it produced only after that transaction has committed.
Side effects triggered by those events can therefore never roll back
the state change itself.
"""

from abc import ABC, abstractmethod
from typing import List
import logging

from django.db import transaction

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Abstract Unit of Work pattern"""

    @abstractmethod
    def commit(self):
        """Commit the transaction"""

    @abstractmethod
    def rollback(self):
        """Rollback the transaction"""

    @abstractmethod
    def collect_events(self, aggregate):
        """Collect events from aggregate root"""


class DjangoUnitOfWork(AbstractUnitOfWork):
    """
    Django implementation of Unit of Work

    Usage:
        with DjangoUnitOfWork() as uow:
            booking = Booking.objects.select_for_update().get(pk=booking_id)
            ...  # conditional status update, event append
            uow.collect_events(booking)
        # transaction committed, events handed to the message bus
    """

    def __init__(self):
        self._events: List[DomainEvent] = []
        self._transaction = None

    def __enter__(self):
        """Start database transaction"""
        self._transaction = transaction.atomic()
        self._transaction.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Complete or rollback transaction"""
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            if self._transaction:
                self._transaction.__exit__(exc_type, exc_val, exc_tb)

    def commit(self):
        """
        Schedule event publishing

        Events are handed to ``transaction.on_commit()`` so they are only
        published once the outermost transaction has been committed.
        """
        events = self._events.copy()
        self._events.clear()
        logger.debug(f"Committing unit of work with {len(events)} events")

        if events:
            transaction.on_commit(lambda: self._publish_events(events))

    def rollback(self):
        """Rollback changes and discard events"""
        if self._events:
            logger.warning(f"Rolling back unit of work, discarding {len(self._events)} events")
        self._events.clear()

    def add_event(self, event: DomainEvent):
        """Register an event that is not owned by an aggregate"""
        self._events.append(event)

    def collect_events(self, aggregate):
        """
        Collect events from aggregate root

        Moves the aggregate's pending domain events into the unit of work.
        """
        new_events = getattr(aggregate, 'pending_events', None)
        if not new_events:
            return
        self._events.extend(new_events)
        aggregate.clear_events()
        logger.debug(
            f"Collected {len(new_events)} events from "
            f"{aggregate.__class__.__name__} (ID: {aggregate.pk})"
        )

    def _publish_events(self, events: List[DomainEvent]):
        """Publish collected events to the message bus after commit"""
        from shared.application.message_bus import message_bus

        logger.info(f"Publishing {len(events)} domain events after commit")

        try:
            message_bus.publish_events(events)
        except Exception as e:
            # The state change is already committed; handlers are retried by
            # their own Celery tasks or by the reconciliation jobs.
            logger.error(f"Error publishing events: {e}", exc_info=True)
