"""Contracts between aggregates raising events and the code reacting to them."""

from __future__ import annotations

from typing import Generic, Protocol, Type, TypeVar

from shared.domain.events import DomainEvent

E = TypeVar("E", bound=DomainEvent, contravariant=True)


class IEventHandler(Protocol, Generic[E]):
    """Reacts to one event type after the order transaction committed."""

    def handle(self, event: E) -> None: ...


class IEventBus(Protocol):
    """Dispatches outbox events to the handlers registered at startup."""

    def publish(self, event: DomainEvent) -> None: ...

    def subscribe(self, event_class: Type[E], handler: IEventHandler[E]) -> None: ...
