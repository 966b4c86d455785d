"""Transition tables for orders and maker orders."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from credits_api.models.order import MakerOrderStatusEnum, OrderStatusEnum
from credits_api.services.errors import InvalidTransition, TransitionNotPermitted


class ActorRole(str, Enum):
    CUSTOMER = "customer"
    MAKER = "maker"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class MakerTransition:
    """One edge of the maker lifecycle and who may take it."""

    from_status: MakerOrderStatusEnum
    to_status: MakerOrderStatusEnum
    actor: ActorRole
    order_status: OrderStatusEnum
    requires_tracking: bool = False


class MakerOrderStateMachine:
    """Forward-only maker lifecycle: assigned → in_production → shipped → completed.

    Completion is reserved for the admin confirming delivery; a maker can
    never mark their own order completed.
    """

    _TRANSITIONS: dict[MakerOrderStatusEnum, MakerTransition] = {
        MakerOrderStatusEnum.ASSIGNED: MakerTransition(
            from_status=MakerOrderStatusEnum.ASSIGNED,
            to_status=MakerOrderStatusEnum.IN_PRODUCTION,
            actor=ActorRole.MAKER,
            order_status=OrderStatusEnum.IN_PRODUCTION,
        ),
        MakerOrderStatusEnum.IN_PRODUCTION: MakerTransition(
            from_status=MakerOrderStatusEnum.IN_PRODUCTION,
            to_status=MakerOrderStatusEnum.SHIPPED,
            actor=ActorRole.MAKER,
            order_status=OrderStatusEnum.SHIPPED,
            requires_tracking=True,
        ),
        MakerOrderStatusEnum.SHIPPED: MakerTransition(
            from_status=MakerOrderStatusEnum.SHIPPED,
            to_status=MakerOrderStatusEnum.COMPLETED,
            actor=ActorRole.ADMIN,
            order_status=OrderStatusEnum.DELIVERED,
        ),
    }

    @classmethod
    def actor_for(cls, target: MakerOrderStatusEnum) -> ActorRole | None:
        for transition in cls._TRANSITIONS.values():
            if transition.to_status == target:
                return transition.actor
        return None

    @classmethod
    def requires_tracking(cls, target: MakerOrderStatusEnum) -> bool:
        return any(t.requires_tracking for t in cls._TRANSITIONS.values() if t.to_status == target)

    @classmethod
    def ensure_permitted(cls, target: MakerOrderStatusEnum, actor: ActorRole) -> None:
        """Reject a target status the actor may never request, whatever the current state."""

        required = cls.actor_for(target)
        if required is not None and required != actor:
            raise TransitionNotPermitted(
                f"Only {required.value} may move an order to {target.value}",
                requested_status=target.value,
                actor_role=actor.value,
            )

    @classmethod
    def resolve(
        cls,
        current: MakerOrderStatusEnum,
        target: MakerOrderStatusEnum,
        actor: ActorRole,
    ) -> MakerTransition:
        cls.ensure_permitted(target, actor)
        transition = cls._TRANSITIONS.get(current)
        if transition is None or transition.to_status != target:
            raise InvalidTransition(current.value, target.value)
        return transition


class OrderStateMachine:
    """Order-level lifecycle; cancellation is possible until the parcel ships."""

    _ALLOWED_TRANSITIONS: dict[OrderStatusEnum, set[OrderStatusEnum]] = {
        OrderStatusEnum.PENDING_PAYMENT: {
            OrderStatusEnum.AWAITING_PAYMENT,
            OrderStatusEnum.PAID,
            OrderStatusEnum.CANCELLED,
        },
        OrderStatusEnum.AWAITING_PAYMENT: {
            OrderStatusEnum.PAID,
            OrderStatusEnum.CANCELLED,
        },
        OrderStatusEnum.PAID: {
            OrderStatusEnum.ASSIGNED,
            OrderStatusEnum.CANCELLED,
        },
        OrderStatusEnum.ASSIGNED: {
            OrderStatusEnum.IN_PRODUCTION,
            OrderStatusEnum.CANCELLED,
        },
        OrderStatusEnum.IN_PRODUCTION: {
            OrderStatusEnum.SHIPPED,
            OrderStatusEnum.CANCELLED,
        },
        OrderStatusEnum.SHIPPED: {OrderStatusEnum.DELIVERED},
        OrderStatusEnum.DELIVERED: set(),
        OrderStatusEnum.CANCELLED: set(),
    }

    @classmethod
    def can_transition(cls, current: OrderStatusEnum, target: OrderStatusEnum) -> bool:
        return target in cls._ALLOWED_TRANSITIONS.get(current, set())

    @classmethod
    def ensure(cls, current: OrderStatusEnum, target: OrderStatusEnum) -> None:
        if not cls.can_transition(current, target):
            raise InvalidTransition(current.value, target.value)
