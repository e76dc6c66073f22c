"""Transactional outbox helpers.

``store_domain_events`` must run inside the transaction that persists the
aggregate.  Publication is deferred with ``transaction.on_commit`` so
subscribers never observe state that is later rolled back.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import structlog
from django.db import transaction

from modules.core.models import OutboxEvent
from shared.domain.bus import IEventBus
from shared.domain.events import DomainEvent, DomainEventMixin

logger = structlog.get_logger(__name__)


def store_domain_events(aggregate: DomainEventMixin, topic: str) -> List[OutboxEvent]:
    """Persist the aggregate's pending events and schedule their publication."""
    pending: List[Tuple[DomainEvent, OutboxEvent]] = []
    for event in aggregate.domain_events:
        row = OutboxEvent.objects.create(
            event_type=event.event_name,
            aggregate_id=str(event.aggregate_id),
            payload=event.to_payload(),
            topic=topic,
        )
        pending.append((event, row))
    aggregate.clear_domain_events()

    if pending:
        transaction.on_commit(lambda: publish_outbox_events(pending))
    return [row for _, row in pending]


def publish_outbox_events(
    pending: Sequence[Tuple[DomainEvent, OutboxEvent]],
    bus: Optional[IEventBus] = None,
) -> None:
    if bus is None:
        from shared.infrastructure.bus import event_bus as bus

    for event, row in pending:
        try:
            bus.publish(event)
        except Exception as exc:
            row.mark_as_failed(str(exc))
            logger.warning(
                "outbox.publish_failed",
                outbox_id=str(row.id),
                event_type=row.event_type,
            )
        else:
            row.mark_as_published()
            logger.info(
                "outbox.published",
                outbox_id=str(row.id),
                event_type=row.event_type,
            )
