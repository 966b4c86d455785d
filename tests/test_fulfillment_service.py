from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy import select

from credits_api.models.audit import AuditLogEntry
from credits_api.models.order import MakerOrderStatusEnum, OrderStatusEnum, PaymentMethodEnum
from credits_api.models.wallet import CreditTransaction, CreditTransactionType
from credits_api.observability.ledger import get_ledger_store
from credits_api.services.errors import (
    InsufficientBalance,
    InvalidTransition,
    MissingTrackingInfo,
    OrderNotFound,
    TransitionNotPermitted,
    ValidationFailed,
)
from credits_api.services.ledger import TransactionEngine
from credits_api.services.orders import FulfillmentService


async def _fund(session_factory, user_id, amount):
    async with session_factory() as session:
        await TransactionEngine(session).apply_transaction(
            user_id=user_id,
            transaction_type=CreditTransactionType.PURCHASE,
            amount=amount,
        )


async def _assigned_order(session_factory, *, customer_id, maker_id, admin_id, total_cents=4500):
    await _fund(session_factory, customer_id, 1000)
    async with session_factory() as session:
        service = FulfillmentService(session)
        order = await service.create_order(
            user_id=customer_id,
            total_cents=total_cents,
            payment_method=PaymentMethodEnum.CREDITS,
            shipping_address={"city": "Montreal"},
        )
        await service.pay_with_credits(order_id=order.id, user_id=customer_id)
        return await service.assign_maker(order_id=order.id, maker_id=maker_id, admin_id=admin_id)


async def _advance_to(session_factory, order_id, maker_id, status):
    async with session_factory() as session:
        service = FulfillmentService(session)
        order = await service.maker_update_order_status(
            maker_id=maker_id,
            order_id=order_id,
            new_status=MakerOrderStatusEnum.IN_PRODUCTION,
        )
        if status == MakerOrderStatusEnum.SHIPPED:
            order = await service.maker_update_order_status(
                maker_id=maker_id,
                order_id=order_id,
                new_status=MakerOrderStatusEnum.SHIPPED,
                tracking_number="123",
                carrier="CarrierX",
            )
        return order


@pytest.mark.asyncio
async def test_pay_with_credits_spends_order_value(session_factory):
    customer_id = uuid4()
    await _fund(session_factory, customer_id, 1000)

    async with session_factory() as session:
        service = FulfillmentService(session)
        order = await service.create_order(
            user_id=customer_id,
            total_cents=4505,
            payment_method=PaymentMethodEnum.CREDITS,
        )
        assert order.status == OrderStatusEnum.PENDING_PAYMENT
        assert order.order_number == "CR000001"

        result = await service.pay_with_credits(order_id=order.id, user_id=customer_id)

    # 45.05 CAD rounds up to 451 credits.
    assert result.new_balance == 549
    assert result.transaction.type == CreditTransactionType.SPEND
    assert result.transaction.reference_id == str(order.id)
    assert result.order.status == OrderStatusEnum.PAID
    assert result.order.payment_confirmed_at is not None
    assert result.order.status_history[-1]["to"] == "paid"
    assert result.order.status_history[-1]["actor_role"] == "customer"


@pytest.mark.asyncio
async def test_repeated_credit_payment_is_not_charged_twice(session_factory):
    customer_id = uuid4()
    await _fund(session_factory, customer_id, 1000)

    async with session_factory() as session:
        service = FulfillmentService(session)
        order = await service.create_order(
            user_id=customer_id,
            total_cents=1000,
            payment_method=PaymentMethodEnum.CREDITS,
        )
        first = await service.pay_with_credits(order_id=order.id, user_id=customer_id)
        second = await service.pay_with_credits(order_id=order.id, user_id=customer_id)

    assert second.replayed is True
    assert second.transaction.id == first.transaction.id
    assert second.new_balance == first.new_balance == 900


@pytest.mark.asyncio
async def test_pay_with_insufficient_credits_leaves_order_pending(session_factory):
    customer_id = uuid4()
    await _fund(session_factory, customer_id, 10)

    async with session_factory() as session:
        service = FulfillmentService(session)
        order = await service.create_order(
            user_id=customer_id,
            total_cents=5000,
            payment_method=PaymentMethodEnum.CREDITS,
        )
        order_id = order.id
        with pytest.raises(InsufficientBalance):
            await service.pay_with_credits(order_id=order_id, user_id=customer_id)

    async with session_factory() as session:
        reloaded = await FulfillmentService(session).get_order(order_id)
    assert reloaded.status == OrderStatusEnum.PENDING_PAYMENT
    assert reloaded.status_history == []


@pytest.mark.asyncio
async def test_other_customer_cannot_pay_order(session_factory):
    customer_id = uuid4()
    async with session_factory() as session:
        service = FulfillmentService(session)
        order = await service.create_order(
            user_id=customer_id,
            total_cents=1000,
            payment_method=PaymentMethodEnum.CREDITS,
        )
        with pytest.raises(OrderNotFound):
            await service.pay_with_credits(order_id=order.id, user_id=uuid4())


@pytest.mark.asyncio
async def test_e_transfer_order_confirmed_by_admin(session_factory):
    admin_id = uuid4()
    async with session_factory() as session:
        service = FulfillmentService(session)
        order = await service.create_order(
            user_id=uuid4(),
            total_cents=2500,
            payment_method=PaymentMethodEnum.E_TRANSFER,
        )
        assert order.status == OrderStatusEnum.AWAITING_PAYMENT

        confirmed = await service.confirm_payment(order_id=order.id, admin_id=admin_id, reference="ET-5521")

        entry = (await session.execute(select(AuditLogEntry))).scalar_one()

    assert confirmed.status == OrderStatusEnum.PAID
    assert confirmed.payment_reference == "ET-5521"
    assert entry.action_type == "payment_confirmation"
    assert entry.before_state["status"] == "awaiting_payment"
    assert entry.after_state["status"] == "paid"


@pytest.mark.asyncio
async def test_maker_cannot_be_assigned_before_payment(session_factory):
    async with session_factory() as session:
        service = FulfillmentService(session)
        order = await service.create_order(
            user_id=uuid4(),
            total_cents=2500,
            payment_method=PaymentMethodEnum.CARD,
        )
        with pytest.raises(InvalidTransition):
            await service.assign_maker(order_id=order.id, maker_id=uuid4(), admin_id=uuid4())


@pytest.mark.asyncio
async def test_shipping_requires_tracking_info(session_factory):
    maker_id = uuid4()
    order = await _assigned_order(session_factory, customer_id=uuid4(), maker_id=maker_id, admin_id=uuid4())

    async with session_factory() as session:
        service = FulfillmentService(session)
        with pytest.raises(MissingTrackingInfo):
            await service.maker_update_order_status(
                maker_id=maker_id,
                order_id=order.id,
                new_status=MakerOrderStatusEnum.SHIPPED,
            )
        with pytest.raises(MissingTrackingInfo):
            await service.maker_update_order_status(
                maker_id=maker_id,
                order_id=order.id,
                new_status=MakerOrderStatusEnum.SHIPPED,
                tracking_number="123",
                carrier="  ",
            )
        reloaded = await service.get_order(order.id)

    assert reloaded.maker_order.status == MakerOrderStatusEnum.ASSIGNED
    assert reloaded.status == OrderStatusEnum.ASSIGNED


@pytest.mark.asyncio
async def test_steps_cannot_be_skipped(session_factory):
    maker_id = uuid4()
    order = await _assigned_order(session_factory, customer_id=uuid4(), maker_id=maker_id, admin_id=uuid4())

    async with session_factory() as session:
        with pytest.raises(InvalidTransition):
            await FulfillmentService(session).maker_update_order_status(
                maker_id=maker_id,
                order_id=order.id,
                new_status=MakerOrderStatusEnum.SHIPPED,
                tracking_number="123",
                carrier="CarrierX",
            )


@pytest.mark.asyncio
async def test_ship_records_tracking_and_history_once(session_factory):
    maker_id = uuid4()
    order = await _assigned_order(session_factory, customer_id=uuid4(), maker_id=maker_id, admin_id=uuid4())
    in_production = await _advance_to(session_factory, order.id, maker_id, MakerOrderStatusEnum.IN_PRODUCTION)
    history_before = len(in_production.status_history)

    async with session_factory() as session:
        service = FulfillmentService(session)
        shipped = await service.maker_update_order_status(
            maker_id=maker_id,
            order_id=order.id,
            new_status=MakerOrderStatusEnum.SHIPPED,
            notes="Packed with care",
            tracking_number="123",
            carrier="CarrierX",
        )
        assert shipped.maker_order.status == MakerOrderStatusEnum.SHIPPED
        assert shipped.status == OrderStatusEnum.SHIPPED
        assert shipped.maker_order.tracking_info["tracking_number"] == "123"
        assert shipped.maker_order.tracking_info["carrier"] == "CarrierX"
        assert "shipped_at" in shipped.maker_order.tracking_info
        assert len(shipped.status_history) == history_before + 1
        last = shipped.status_history[-1]
        assert (last["from"], last["to"], last["actor_role"]) == ("in_production", "shipped", "maker")
        assert last["actor_id"] == str(maker_id)

        with pytest.raises(InvalidTransition):
            await service.maker_update_order_status(
                maker_id=maker_id,
                order_id=order.id,
                new_status=MakerOrderStatusEnum.SHIPPED,
                tracking_number="456",
                carrier="CarrierY",
            )

    assert get_ledger_store().snapshot().transitions["in_production->shipped"] == 1


@pytest.mark.asyncio
async def test_maker_cannot_complete_their_own_order(session_factory):
    maker_id = uuid4()
    order = await _assigned_order(session_factory, customer_id=uuid4(), maker_id=maker_id, admin_id=uuid4())
    await _advance_to(session_factory, order.id, maker_id, MakerOrderStatusEnum.SHIPPED)

    async with session_factory() as session:
        with pytest.raises(TransitionNotPermitted):
            await FulfillmentService(session).maker_update_order_status(
                maker_id=maker_id,
                order_id=order.id,
                new_status=MakerOrderStatusEnum.COMPLETED,
            )


@pytest.mark.asyncio
async def test_only_assigned_maker_may_update(session_factory):
    order = await _assigned_order(session_factory, customer_id=uuid4(), maker_id=uuid4(), admin_id=uuid4())

    async with session_factory() as session:
        with pytest.raises(TransitionNotPermitted):
            await FulfillmentService(session).maker_update_order_status(
                maker_id=uuid4(),
                order_id=order.id,
                new_status=MakerOrderStatusEnum.IN_PRODUCTION,
            )


@pytest.mark.asyncio
async def test_admin_confirms_delivery(session_factory):
    maker_id = uuid4()
    admin_id = uuid4()
    order = await _assigned_order(session_factory, customer_id=uuid4(), maker_id=maker_id, admin_id=admin_id)

    async with session_factory() as session:
        with pytest.raises(InvalidTransition):
            await FulfillmentService(session).confirm_delivery(order_id=order.id, admin_id=admin_id)

    await _advance_to(session_factory, order.id, maker_id, MakerOrderStatusEnum.SHIPPED)

    async with session_factory() as session:
        delivered = await FulfillmentService(session).confirm_delivery(
            order_id=order.id,
            admin_id=admin_id,
            notes="Customer confirmed receipt",
        )
        entries = (
            await session.execute(
                select(AuditLogEntry).where(AuditLogEntry.action_type == "order_status_update")
            )
        ).scalars().all()

    assert delivered.status == OrderStatusEnum.DELIVERED
    assert delivered.maker_order.status == MakerOrderStatusEnum.COMPLETED
    assert [entry["to"] for entry in delivered.status_history] == [
        "paid",
        "assigned",
        "in_production",
        "shipped",
        "delivered",
    ]
    assert len(entries) == 1
    assert entries[0].before_state["maker_status"] == "shipped"
    assert entries[0].after_state["maker_status"] == "completed"


@pytest.mark.asyncio
async def test_cancel_with_refund_credits_customer(session_factory):
    customer_id = uuid4()
    maker_id = uuid4()
    admin_id = uuid4()
    order = await _assigned_order(
        session_factory,
        customer_id=customer_id,
        maker_id=maker_id,
        admin_id=admin_id,
        total_cents=4500,
    )
    order_id = order.id

    async with session_factory() as session:
        with pytest.raises(ValidationFailed):
            await FulfillmentService(session).cancel_order(
                order_id=order_id, admin_id=admin_id, reason="Printer failure", refund_credits=451
            )

    async with session_factory() as session:
        result = await FulfillmentService(session).cancel_order(
            order_id=order_id,
            admin_id=admin_id,
            reason="Printer failure",
            refund_credits=450,
        )

    assert result.order.status == OrderStatusEnum.CANCELLED
    assert result.order.cancellation_reason == "Printer failure"
    assert result.refunded_credits == 450
    assert result.new_balance == 1000

    async with session_factory() as session:
        refund = (
            await session.execute(
                select(CreditTransaction).where(CreditTransaction.type == CreditTransactionType.REFUND)
            )
        ).scalar_one()
        entry = (
            await session.execute(
                select(AuditLogEntry).where(AuditLogEntry.action_type == "order_cancellation")
            )
        ).scalar_one()

    assert refund.reference_id == str(order_id)
    assert refund.amount == 450
    assert entry.reason == "Printer failure"

    async with session_factory() as session:
        with pytest.raises(InvalidTransition):
            await FulfillmentService(session).maker_update_order_status(
                maker_id=maker_id,
                order_id=order_id,
                new_status=MakerOrderStatusEnum.IN_PRODUCTION,
            )


@pytest.mark.asyncio
async def test_maker_jobs_list_only_open_work_for_that_maker(session_factory):
    maker_id = uuid4()
    admin_id = uuid4()
    first = await _assigned_order(session_factory, customer_id=uuid4(), maker_id=maker_id, admin_id=admin_id)
    second = await _assigned_order(session_factory, customer_id=uuid4(), maker_id=maker_id, admin_id=admin_id)
    done = await _assigned_order(session_factory, customer_id=uuid4(), maker_id=maker_id, admin_id=admin_id)
    dropped = await _assigned_order(session_factory, customer_id=uuid4(), maker_id=maker_id, admin_id=admin_id)
    await _assigned_order(session_factory, customer_id=uuid4(), maker_id=uuid4(), admin_id=admin_id)
    first_id, second_id, done_id, dropped_id = first.id, second.id, done.id, dropped.id

    await _advance_to(session_factory, first_id, maker_id, MakerOrderStatusEnum.IN_PRODUCTION)
    await _advance_to(session_factory, done_id, maker_id, MakerOrderStatusEnum.SHIPPED)
    async with session_factory() as session:
        service = FulfillmentService(session)
        await service.confirm_delivery(order_id=done_id, admin_id=admin_id)
        await service.cancel_order(order_id=dropped_id, admin_id=admin_id, reason="Customer request")

    async with session_factory() as session:
        jobs = await FulfillmentService(session).list_maker_jobs(maker_id)

    assert [job.order_id for job in jobs] == [second_id, first_id]
    assert [job.status for job in jobs] == [MakerOrderStatusEnum.ASSIGNED, MakerOrderStatusEnum.IN_PRODUCTION]
    assert jobs[0].order.shipping_address == {"city": "Montreal"}


@pytest.mark.asyncio
async def test_shipped_orders_cannot_be_cancelled(session_factory):
    maker_id = uuid4()
    admin_id = uuid4()
    order = await _assigned_order(session_factory, customer_id=uuid4(), maker_id=maker_id, admin_id=admin_id)
    await _advance_to(session_factory, order.id, maker_id, MakerOrderStatusEnum.SHIPPED)

    async with session_factory() as session:
        with pytest.raises(InvalidTransition):
            await FulfillmentService(session).cancel_order(
                order_id=order.id,
                admin_id=admin_id,
                reason="Customer changed their mind",
            )


@pytest.mark.asyncio
async def test_unpaid_order_cannot_be_refunded(session_factory):
    async with session_factory() as session:
        service = FulfillmentService(session)
        order = await service.create_order(
            user_id=uuid4(),
            total_cents=1000,
            payment_method=PaymentMethodEnum.CARD,
        )
        order_id = order.id
        with pytest.raises(ValidationFailed):
            await service.cancel_order(order_id=order_id, admin_id=uuid4(), reason="Duplicate", refund_credits=10)

    async with session_factory() as session:
        result = await FulfillmentService(session).cancel_order(order_id=order_id, admin_id=uuid4(), reason="Duplicate")

    assert result.refunded_credits == 0
    assert result.new_balance is None
    assert result.order.status == OrderStatusEnum.CANCELLED
