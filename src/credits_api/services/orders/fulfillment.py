"""Order payment, maker assignment and the fulfillment lifecycle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from credits_api.core.clock import utcnow
from credits_api.core.credits import credits_for_cents
from credits_api.db.retry import run_in_unit
from credits_api.models.audit import AuditActionType, AuditTargetType
from credits_api.models.order import (
    MakerOrder,
    MakerOrderStatusEnum,
    Order,
    OrderStatusEnum,
    PaymentMethodEnum,
)
from credits_api.models.wallet import CreditTransaction, CreditTransactionType
from credits_api.observability.ledger import get_ledger_store
from credits_api.schemas.snapshots import OrderSnapshot
from credits_api.services.audit import AuditLogService
from credits_api.services.errors import (
    InvalidTransition,
    MissingTrackingInfo,
    OrderNotFound,
    ServiceError,
    TransitionNotPermitted,
    ValidationFailed,
)
from credits_api.services.ledger.engine import TransactionEngine
from credits_api.services.orders.state_machine import ActorRole, MakerOrderStateMachine, OrderStateMachine

T = TypeVar("T")

_OPEN_MAKER_STATUSES = (
    MakerOrderStatusEnum.ASSIGNED,
    MakerOrderStatusEnum.IN_PRODUCTION,
    MakerOrderStatusEnum.SHIPPED,
)

_CANCELLABLE = {
    OrderStatusEnum.PENDING_PAYMENT,
    OrderStatusEnum.AWAITING_PAYMENT,
    OrderStatusEnum.PAID,
    OrderStatusEnum.ASSIGNED,
    OrderStatusEnum.IN_PRODUCTION,
}


@dataclass
class PaymentResult:
    order: Order
    new_balance: int
    transaction: CreditTransaction
    replayed: bool = False


@dataclass
class CancellationResult:
    order: Order
    refunded_credits: int
    new_balance: int | None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _append_history(
    order: Order,
    *,
    from_status: OrderStatusEnum,
    to_status: OrderStatusEnum,
    actor_id: UUID | None,
    actor_role: ActorRole,
    notes: str | None = None,
) -> None:
    entry: dict[str, Any] = {
        "from": from_status.value,
        "to": to_status.value,
        "changed_at": utcnow().isoformat(),
        "actor_id": str(actor_id) if actor_id else None,
        "actor_role": actor_role.value,
        "notes": notes,
    }
    # JSON columns only persist on reassignment.
    order.status_history = [*(order.status_history or []), entry]


class FulfillmentService:
    """Moves orders from payment through production to delivery.

    Each operation is one unit of work: the order row, the maker order, any
    ledger movement and the audit entry commit together.
    """

    def __init__(self, session: AsyncSession, *, engine: TransactionEngine | None = None) -> None:
        self._session = session
        self._engine = engine or TransactionEngine(session)
        self._audit = AuditLogService(session)
        self._metrics = get_ledger_store()

    async def create_order(
        self,
        *,
        user_id: UUID,
        total_cents: int,
        payment_method: PaymentMethodEnum,
        shipping_address: dict[str, Any] | None = None,
    ) -> Order:
        if isinstance(total_cents, bool) or not isinstance(total_cents, int) or total_cents <= 0:
            raise ValidationFailed("Order total must be a positive number of cents")

        initial_status = (
            OrderStatusEnum.AWAITING_PAYMENT
            if payment_method == PaymentMethodEnum.E_TRANSFER
            else OrderStatusEnum.PENDING_PAYMENT
        )

        async def work() -> Order:
            order_count = (await self._session.execute(select(func.count(Order.id)))).scalar_one()
            order = Order(
                order_number=f"CR{(order_count or 0) + 1:06d}",
                user_id=user_id,
                status=initial_status,
                total_cents=total_cents,
                payment_method=payment_method,
                shipping_address=shipping_address,
                status_history=[],
            )
            self._session.add(order)
            await self._session.flush()
            return await self._load(order.id)

        order = await run_in_unit(self._session, work, operation="create_order")
        logger.info(
            "Order created",
            order_id=str(order.id),
            order_number=order.order_number,
            user_id=str(user_id),
            total_cents=total_cents,
            payment_method=payment_method.value,
        )
        return order

    async def get_order(self, order_id: UUID) -> Order:
        return await self._load(order_id)

    async def list_maker_jobs(self, maker_id: UUID) -> list[MakerOrder]:
        """The maker's open jobs, most recently assigned first; cancelled orders drop out."""

        stmt = (
            select(MakerOrder)
            .join(Order, Order.id == MakerOrder.order_id)
            .where(
                MakerOrder.maker_id == maker_id,
                MakerOrder.status.in_(_OPEN_MAKER_STATUSES),
                Order.status != OrderStatusEnum.CANCELLED,
            )
            .options(selectinload(MakerOrder.order))
            .order_by(MakerOrder.assigned_at.desc(), MakerOrder.id.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def pay_with_credits(self, *, order_id: UUID, user_id: UUID) -> PaymentResult:
        """Settle an order from the customer's wallet.

        The spend uses the order id as its reference, so a retried checkout
        replays the original payment instead of charging twice.
        """

        async def work() -> PaymentResult:
            order = await self._load(order_id, lock=True)
            if order.user_id != user_id:
                raise OrderNotFound("Order not found", order_id=order_id)
            if order.payment_method != PaymentMethodEnum.CREDITS:
                raise ValidationFailed("Order is not payable with credits", order_id=order_id)

            amount = credits_for_cents(order.total_cents)
            already_paid = order.payment_confirmed_at is not None and order.status != OrderStatusEnum.CANCELLED
            if not already_paid:
                OrderStateMachine.ensure(order.status, OrderStatusEnum.PAID)
            payment = await self._engine.stage(
                user_id=user_id,
                transaction_type=CreditTransactionType.SPEND,
                amount=-amount,
                description=f"Order {order.order_number}",
                reference_id=str(order.id),
            )
            if already_paid:
                if not payment.replayed:
                    raise InvalidTransition(order.status.value, OrderStatusEnum.PAID.value)
                return PaymentResult(
                    order=order,
                    new_balance=payment.new_balance,
                    transaction=payment.transaction,
                    replayed=True,
                )

            previous = order.status
            order.status = OrderStatusEnum.PAID
            order.payment_reference = str(payment.transaction.id)
            order.payment_confirmed_at = utcnow()
            _append_history(
                order,
                from_status=previous,
                to_status=OrderStatusEnum.PAID,
                actor_id=user_id,
                actor_role=ActorRole.CUSTOMER,
                notes=f"Paid with {amount} credits",
            )
            await self._session.flush()
            return PaymentResult(order=order, new_balance=payment.new_balance, transaction=payment.transaction)

        result = await self._run(work, operation="pay_with_credits")

        if not result.replayed:
            self._metrics.record_transaction(CreditTransactionType.SPEND.value)
            self._metrics.record_transition(OrderStatusEnum.PENDING_PAYMENT.value, OrderStatusEnum.PAID.value)
        logger.info(
            "Order paid with credits",
            order_id=str(order_id),
            user_id=str(user_id),
            new_balance=result.new_balance,
            replayed=result.replayed,
        )
        return result

    async def confirm_payment(self, *, order_id: UUID, admin_id: UUID, reference: str | None = None) -> Order:
        """Admin confirmation of an external (card or e-transfer) payment."""

        payment_reference = _clean(reference)

        async def work() -> Order:
            order = await self._load(order_id, lock=True)
            if order.payment_method == PaymentMethodEnum.CREDITS:
                raise ValidationFailed("Credit orders are settled through the ledger", order_id=order_id)
            OrderStateMachine.ensure(order.status, OrderStatusEnum.PAID)

            before = OrderSnapshot.of(order)
            previous = order.status
            order.status = OrderStatusEnum.PAID
            order.payment_reference = payment_reference
            order.payment_confirmed_at = utcnow()
            _append_history(
                order,
                from_status=previous,
                to_status=OrderStatusEnum.PAID,
                actor_id=admin_id,
                actor_role=ActorRole.ADMIN,
                notes=payment_reference,
            )
            await self._session.flush()
            await self._audit.record(
                admin_id=admin_id,
                action_type=AuditActionType.PAYMENT_CONFIRMATION,
                target_type=AuditTargetType.ORDER,
                target_id=str(order.id),
                before_state=before,
                after_state=OrderSnapshot.of(order),
                reason=payment_reference,
            )
            return order

        order = await self._run(work, operation="confirm_payment")
        self._metrics.record_transition(order.status_history[-1]["from"], OrderStatusEnum.PAID.value)
        logger.info("Payment confirmed", order_id=str(order_id), admin_id=str(admin_id))
        return order

    async def assign_maker(self, *, order_id: UUID, maker_id: UUID, admin_id: UUID) -> Order:
        async def work() -> Order:
            order = await self._load(order_id, lock=True)
            if order.maker_order is not None:
                raise InvalidTransition(
                    order.status.value,
                    OrderStatusEnum.ASSIGNED.value,
                    message="Order already has a maker assigned",
                )
            OrderStateMachine.ensure(order.status, OrderStatusEnum.ASSIGNED)

            before = OrderSnapshot.of(order)
            maker_order = MakerOrder(
                order_id=order.id,
                maker_id=maker_id,
                status=MakerOrderStatusEnum.ASSIGNED,
                assigned_at=utcnow(),
            )
            order.maker_order = maker_order
            previous = order.status
            order.status = OrderStatusEnum.ASSIGNED
            _append_history(
                order,
                from_status=previous,
                to_status=OrderStatusEnum.ASSIGNED,
                actor_id=admin_id,
                actor_role=ActorRole.ADMIN,
                notes=f"Assigned to maker {maker_id}",
            )
            await self._session.flush()
            await self._audit.record(
                admin_id=admin_id,
                action_type=AuditActionType.MAKER_ASSIGNMENT,
                target_type=AuditTargetType.ORDER,
                target_id=str(order.id),
                before_state=before,
                after_state=OrderSnapshot.of(order),
                reason=None,
            )
            return order

        order = await self._run(work, operation="assign_maker")
        self._metrics.record_transition(OrderStatusEnum.PAID.value, OrderStatusEnum.ASSIGNED.value)
        logger.info("Maker assigned", order_id=str(order_id), maker_id=str(maker_id), admin_id=str(admin_id))
        return order

    async def maker_update_order_status(
        self,
        *,
        maker_id: UUID,
        order_id: UUID,
        new_status: MakerOrderStatusEnum,
        notes: str | None = None,
        tracking_number: str | None = None,
        carrier: str | None = None,
    ) -> Order:
        """Advance the maker's own order by exactly one step.

        Shipping needs a tracking number and carrier; completion belongs to
        the admin confirming delivery.
        """

        MakerOrderStateMachine.ensure_permitted(new_status, ActorRole.MAKER)
        tracking_number = _clean(tracking_number)
        carrier = _clean(carrier)
        if MakerOrderStateMachine.requires_tracking(new_status) and not (tracking_number and carrier):
            self._metrics.record_rejection(MissingTrackingInfo.kind)
            raise MissingTrackingInfo("A tracking number and carrier are required to mark an order shipped")
        note_text = _clean(notes)

        async def work() -> tuple[MakerOrderStatusEnum, Order]:
            order = await self._load(order_id, lock=True)
            maker_order = order.maker_order
            if maker_order is None:
                raise InvalidTransition(
                    order.status.value,
                    new_status.value,
                    message="Order has not been assigned to a maker",
                )
            if maker_order.maker_id != maker_id:
                raise TransitionNotPermitted("Order is assigned to another maker", order_id=order_id)
            if order.status == OrderStatusEnum.CANCELLED:
                raise InvalidTransition(
                    order.status.value,
                    new_status.value,
                    message="Order has been cancelled",
                )

            previous = maker_order.status
            transition = MakerOrderStateMachine.resolve(previous, new_status, ActorRole.MAKER)
            OrderStateMachine.ensure(order.status, transition.order_status)

            maker_order.status = transition.to_status
            if note_text:
                maker_order.notes = note_text
            if transition.requires_tracking:
                maker_order.tracking_info = {
                    "tracking_number": tracking_number,
                    "carrier": carrier,
                    "shipped_at": utcnow().isoformat(),
                }
            order_previous = order.status
            order.status = transition.order_status
            _append_history(
                order,
                from_status=order_previous,
                to_status=transition.order_status,
                actor_id=maker_id,
                actor_role=ActorRole.MAKER,
                notes=note_text,
            )
            await self._session.flush()
            return previous, order

        previous, order = await self._run(work, operation="maker_update_order_status")
        self._metrics.record_transition(previous.value, new_status.value)
        logger.info(
            "Maker order status updated",
            order_id=str(order_id),
            maker_id=str(maker_id),
            from_status=previous.value,
            to_status=new_status.value,
        )
        return order

    async def confirm_delivery(self, *, order_id: UUID, admin_id: UUID, notes: str | None = None) -> Order:
        note_text = _clean(notes)

        async def work() -> Order:
            order = await self._load(order_id, lock=True)
            maker_order = order.maker_order
            if maker_order is None:
                raise InvalidTransition(
                    order.status.value,
                    MakerOrderStatusEnum.COMPLETED.value,
                    message="Order has not been assigned to a maker",
                )
            transition = MakerOrderStateMachine.resolve(
                maker_order.status,
                MakerOrderStatusEnum.COMPLETED,
                ActorRole.ADMIN,
            )
            OrderStateMachine.ensure(order.status, transition.order_status)

            before = OrderSnapshot.of(order)
            maker_order.status = transition.to_status
            previous = order.status
            order.status = transition.order_status
            _append_history(
                order,
                from_status=previous,
                to_status=transition.order_status,
                actor_id=admin_id,
                actor_role=ActorRole.ADMIN,
                notes=note_text,
            )
            await self._session.flush()
            await self._audit.record(
                admin_id=admin_id,
                action_type=AuditActionType.ORDER_STATUS_UPDATE,
                target_type=AuditTargetType.ORDER,
                target_id=str(order.id),
                before_state=before,
                after_state=OrderSnapshot.of(order),
                reason=note_text,
            )
            return order

        order = await self._run(work, operation="confirm_delivery")
        self._metrics.record_transition(MakerOrderStatusEnum.SHIPPED.value, MakerOrderStatusEnum.COMPLETED.value)
        logger.info("Delivery confirmed", order_id=str(order_id), admin_id=str(admin_id))
        return order

    async def cancel_order(
        self,
        *,
        order_id: UUID,
        admin_id: UUID,
        reason: str | None,
        refund_credits: int = 0,
    ) -> CancellationResult:
        """Cancel an order that has not shipped, optionally refunding credits.

        The refund amount is decided by the caller and may not exceed the
        credit value of the order total.
        """

        reason_text = _clean(reason)
        if not reason_text:
            raise ValidationFailed("A reason is required to cancel an order")
        if isinstance(refund_credits, bool) or not isinstance(refund_credits, int) or refund_credits < 0:
            raise ValidationFailed("Refund must be a non-negative number of credits")

        async def work() -> CancellationResult:
            order = await self._load(order_id, lock=True)
            if order.status not in _CANCELLABLE:
                raise InvalidTransition(order.status.value, OrderStatusEnum.CANCELLED.value)
            ceiling = credits_for_cents(order.total_cents)
            if refund_credits > ceiling:
                raise ValidationFailed("Refund exceeds the order value", maximum=ceiling)
            if refund_credits and order.payment_confirmed_at is None:
                raise ValidationFailed("Cannot refund an order that was never paid", order_id=order_id)

            before = OrderSnapshot.of(order)
            new_balance: int | None = None
            if refund_credits:
                refund = await self._engine.stage(
                    user_id=order.user_id,
                    transaction_type=CreditTransactionType.REFUND,
                    amount=refund_credits,
                    description=f"Refund for cancelled order {order.order_number}",
                    reference_id=str(order.id),
                )
                new_balance = refund.new_balance

            previous = order.status
            order.status = OrderStatusEnum.CANCELLED
            order.cancellation_reason = reason_text
            _append_history(
                order,
                from_status=previous,
                to_status=OrderStatusEnum.CANCELLED,
                actor_id=admin_id,
                actor_role=ActorRole.ADMIN,
                notes=reason_text,
            )
            await self._session.flush()
            await self._audit.record(
                admin_id=admin_id,
                action_type=AuditActionType.ORDER_CANCELLATION,
                target_type=AuditTargetType.ORDER,
                target_id=str(order.id),
                before_state=before,
                after_state=OrderSnapshot.of(order),
                reason=reason_text,
            )
            return CancellationResult(order=order, refunded_credits=refund_credits, new_balance=new_balance)

        result = await self._run(work, operation="cancel_order")
        if result.refunded_credits:
            self._metrics.record_transaction(CreditTransactionType.REFUND.value)
        logger.info(
            "Order cancelled",
            order_id=str(order_id),
            admin_id=str(admin_id),
            refunded_credits=result.refunded_credits,
        )
        return result

    async def _run(self, work: Callable[[], Awaitable[T]], *, operation: str) -> T:
        try:
            return await run_in_unit(self._session, work, operation=operation)
        except ServiceError as exc:
            self._metrics.record_rejection(exc.kind)
            raise

    async def _load(self, order_id: UUID, *, lock: bool = False) -> Order:
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.maker_order))
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFound("Order not found", order_id=order_id)
        return order
