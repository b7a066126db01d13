"""Tests for subscription commands (pure DB, no HTTP)."""

import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.billing.cycle import run_billing_cycle
from billing_engine.errors import DependencyInUse, InvalidTransition, NoOpChange, NotFound, ValidationError
from billing_engine.models.enums import InvoiceStatus, PlanTier, SubscriptionStatus
from billing_engine.services import invoice_service, plan_service, subscription_service, user_service

START = date(2025, 1, 1)


async def _other_user(db_session: AsyncSession):
    return await user_service.create_user(
        db_session, email=f"other-{uuid.uuid4().hex[:8]}@test.com", password="secret123", name="Other"
    )


async def _unpaid_invoice(db_session: AsyncSession, subscription):
    """PENDIENTE invoice issued 2025-01-31, due 2025-02-15."""
    return await invoice_service.issue_invoice(
        db_session,
        subscription,
        subtotal=Decimal("10.00"),
        issue_date=date(2025, 1, 31),
        due_date=date(2025, 2, 15),
        concept="Suscripción Basic",
    )


class TestCreateSubscription:
    async def test_plan_without_trial_starts_active(self, db_session: AsyncSession, active_subscription):
        assert active_subscription.status == SubscriptionStatus.ACTIVA
        assert active_subscription.start_date == START
        assert active_subscription.next_billing_date == date(2025, 1, 31)
        assert active_subscription.effective_price == Decimal("10.00")
        assert active_subscription.pending_credit == Decimal("0.00")
        assert active_subscription.auto_renew is True
        assert active_subscription.version == 1

    async def test_plan_with_trial_starts_in_trial(self, db_session: AsyncSession, trial_subscription):
        assert trial_subscription.status == SubscriptionStatus.TRIAL
        assert trial_subscription.next_billing_date == date(2025, 1, 15)

    async def test_second_live_subscription_rejected(
        self, db_session: AsyncSession, active_subscription, premium_plan
    ):
        with pytest.raises(InvalidTransition):
            await subscription_service.create_subscription(
                db_session, active_subscription.user_id, premium_plan.id, start_date=START
            )

    async def test_new_subscription_after_cancellation(
        self, db_session: AsyncSession, active_subscription, premium_plan
    ):
        await subscription_service.cancel_subscription(db_session, active_subscription.id, "Upgrade")
        again = await subscription_service.create_subscription(
            db_session, active_subscription.user_id, premium_plan.id, start_date=START
        )
        assert again.status == SubscriptionStatus.ACTIVA

    async def test_inactive_plan_rejected(self, db_session: AsyncSession, test_user, basic_plan):
        await plan_service.update_plan(db_session, basic_plan.id, {"is_active": False})
        with pytest.raises(ValidationError):
            await subscription_service.create_subscription(db_session, test_user.id, basic_plan.id)

    async def test_inactive_user_rejected(self, db_session: AsyncSession, test_user, basic_plan):
        await user_service.update_user(db_session, test_user.id, {"is_active": False})
        with pytest.raises(ValidationError):
            await subscription_service.create_subscription(db_session, test_user.id, basic_plan.id)

    async def test_unknown_plan(self, db_session: AsyncSession, test_user):
        with pytest.raises(NotFound):
            await subscription_service.create_subscription(db_session, test_user.id, uuid.uuid4())


class TestChangePlan:
    async def test_upgrade_issues_proration_invoice(
        self, db_session: AsyncSession, active_subscription, premium_plan
    ):
        result = await subscription_service.change_plan(
            db_session, active_subscription.id, premium_plan.id, date(2025, 1, 16)
        )
        assert result.charge == Decimal("10.00")
        assert result.days_remaining == 15
        assert result.new_price == Decimal("30.00")
        assert result.subscription.plan_id == premium_plan.id
        assert result.subscription.effective_price == Decimal("30.00")
        assert result.subscription.next_billing_date == date(2025, 1, 31)

        invoice = result.proration_invoice
        assert invoice is not None
        assert invoice.is_proration is True
        assert invoice.status == InvoiceStatus.PENDIENTE
        assert invoice.subtotal == Decimal("10.00")
        assert invoice.tax_amount == Decimal("2.10")
        assert invoice.total == Decimal("12.10")
        assert invoice.issue_date == date(2025, 1, 16)
        assert invoice.due_date == date(2025, 1, 23)

    async def test_downgrade_becomes_credit(self, db_session: AsyncSession, test_user, basic_plan, premium_plan):
        subscription = await subscription_service.create_subscription(
            db_session, test_user.id, premium_plan.id, start_date=START
        )
        result = await subscription_service.change_plan(db_session, subscription.id, basic_plan.id, date(2025, 1, 16))
        assert result.charge == Decimal("-10.00")
        assert result.proration_invoice is None
        assert result.subscription.pending_credit == Decimal("10.00")
        assert result.subscription.effective_price == Decimal("10.00")
        assert await invoice_service.list_by_subscription(db_session, subscription.id) == []

    async def test_proration_uses_current_plan_price(
        self, db_session: AsyncSession, active_subscription, basic_plan, premium_plan
    ):
        await plan_service.update_plan(db_session, basic_plan.id, {"monthly_price": Decimal("20.00")})
        assert active_subscription.effective_price == Decimal("10.00")

        result = await subscription_service.change_plan(
            db_session, active_subscription.id, premium_plan.id, date(2025, 1, 16)
        )
        # (30 - 20) * 15 / 30
        assert result.charge == Decimal("5.00")
        assert result.proration_invoice.subtotal == Decimal("5.00")
        assert result.subscription.effective_price == Decimal("30.00")

    async def test_same_plan_is_a_no_op(self, db_session: AsyncSession, active_subscription, basic_plan):
        with pytest.raises(NoOpChange):
            await subscription_service.change_plan(db_session, active_subscription.id, basic_plan.id)

    async def test_terminal_subscription_rejected(self, db_session: AsyncSession, active_subscription, premium_plan):
        await subscription_service.cancel_subscription(db_session, active_subscription.id, "Bye")
        with pytest.raises(InvalidTransition):
            await subscription_service.change_plan(db_session, active_subscription.id, premium_plan.id)

    async def test_inactive_target_plan_rejected(self, db_session: AsyncSession, active_subscription, premium_plan):
        await plan_service.update_plan(db_session, premium_plan.id, {"is_active": False})
        with pytest.raises(ValidationError):
            await subscription_service.change_plan(db_session, active_subscription.id, premium_plan.id)

    async def test_trial_to_plan_without_trial_activates_without_charge(
        self, db_session: AsyncSession, trial_subscription, premium_plan
    ):
        result = await subscription_service.change_plan(
            db_session, trial_subscription.id, premium_plan.id, date(2025, 1, 5)
        )
        assert result.charge == Decimal("0.00")
        assert result.proration_invoice is None
        assert result.subscription.status == SubscriptionStatus.ACTIVA
        assert result.subscription.next_billing_date == date(2025, 1, 5)

    async def test_trial_to_trial_plan_stays_in_trial(self, db_session: AsyncSession, trial_subscription):
        other = await plan_service.create_plan(
            db_session, name="Growth", tier=PlanTier.PREMIUM, monthly_price=Decimal("20"), trial_days=7
        )
        result = await subscription_service.change_plan(db_session, trial_subscription.id, other.id, date(2025, 1, 5))
        assert result.subscription.status == SubscriptionStatus.TRIAL
        assert result.subscription.next_billing_date == date(2025, 1, 15)
        assert result.subscription.effective_price == Decimal("20.00")


class TestCancel:
    async def test_cancel_records_reason(self, db_session: AsyncSession, active_subscription):
        now = datetime(2025, 1, 10, 12, 0)
        cancelled = await subscription_service.cancel_subscription(
            db_session, active_subscription.id, "  Demasiado caro  ", now=now
        )
        assert cancelled.status == SubscriptionStatus.CANCELADA
        assert cancelled.cancellation_reason == "Demasiado caro"
        assert cancelled.cancelled_at == now
        assert cancelled.auto_renew is False
        assert cancelled.version == 2

    async def test_reason_required(self, db_session: AsyncSession, active_subscription):
        with pytest.raises(ValidationError):
            await subscription_service.cancel_subscription(db_session, active_subscription.id, "   ")
        assert active_subscription.status == SubscriptionStatus.ACTIVA

    async def test_cancel_twice_rejected(self, db_session: AsyncSession, active_subscription):
        await subscription_service.cancel_subscription(db_session, active_subscription.id, "Bye")
        with pytest.raises(InvalidTransition):
            await subscription_service.cancel_subscription(db_session, active_subscription.id, "Bye again")


class TestReactivate:
    async def _cancel(self, db_session, subscription):
        return await subscription_service.cancel_subscription(
            db_session, subscription.id, "Pausa", now=datetime(2025, 1, 10, 9, 0)
        )

    async def test_within_window(self, db_session: AsyncSession, active_subscription):
        await self._cancel(db_session, active_subscription)
        reactivated = await subscription_service.reactivate_subscription(
            db_session, active_subscription.id, today=date(2025, 1, 20)
        )
        assert reactivated.status == SubscriptionStatus.ACTIVA
        assert reactivated.next_billing_date == date(2025, 2, 19)
        assert reactivated.auto_renew is True
        assert reactivated.cancellation_reason is None
        assert reactivated.cancelled_at is None

    async def test_window_passed(self, db_session: AsyncSession, active_subscription):
        await self._cancel(db_session, active_subscription)
        with pytest.raises(InvalidTransition):
            await subscription_service.reactivate_subscription(
                db_session, active_subscription.id, today=date(2025, 2, 20)
            )

    async def test_unpaid_invoice_blocks(self, db_session: AsyncSession, active_subscription, premium_plan):
        await subscription_service.change_plan(db_session, active_subscription.id, premium_plan.id, date(2025, 1, 5))
        await self._cancel(db_session, active_subscription)
        with pytest.raises(InvalidTransition):
            await subscription_service.reactivate_subscription(
                db_session, active_subscription.id, today=date(2025, 1, 12)
            )

    async def test_other_live_subscription_blocks(self, db_session: AsyncSession, active_subscription, premium_plan):
        await self._cancel(db_session, active_subscription)
        await subscription_service.create_subscription(
            db_session, active_subscription.user_id, premium_plan.id, start_date=date(2025, 1, 11)
        )
        with pytest.raises(InvalidTransition):
            await subscription_service.reactivate_subscription(
                db_session, active_subscription.id, today=date(2025, 1, 12)
            )

    async def test_only_cancelled_can_be_reactivated(self, db_session: AsyncSession, active_subscription):
        with pytest.raises(InvalidTransition):
            await subscription_service.reactivate_subscription(db_session, active_subscription.id)


class TestChangeStatus:
    async def test_delinquency_chain(self, db_session: AsyncSession, active_subscription):
        sub_id = active_subscription.id
        invoice = await _unpaid_invoice(db_session, active_subscription)

        delinquent = await subscription_service.change_status(
            db_session, sub_id, SubscriptionStatus.MOROSA, today=date(2025, 2, 20)
        )
        assert delinquent.status == SubscriptionStatus.MOROSA
        suspended = await subscription_service.change_status(db_session, sub_id, SubscriptionStatus.SUSPENDIDA)
        assert suspended.status == SubscriptionStatus.SUSPENDIDA

        await invoice_service.cancel_invoice(db_session, invoice.id)
        settled = await subscription_service.change_status(db_session, sub_id, SubscriptionStatus.ACTIVA)
        assert settled.status == SubscriptionStatus.ACTIVA

    async def test_delinquent_needs_an_overdue_invoice(self, db_session: AsyncSession, active_subscription):
        sub_id = active_subscription.id
        with pytest.raises(InvalidTransition):
            await subscription_service.change_status(db_session, sub_id, SubscriptionStatus.MOROSA)

        await _unpaid_invoice(db_session, active_subscription)
        # Due on 2025-02-15, so not late yet on the due date itself
        with pytest.raises(InvalidTransition):
            await subscription_service.change_status(
                db_session, sub_id, SubscriptionStatus.MOROSA, today=date(2025, 2, 15)
            )
        await db_session.refresh(active_subscription)
        assert active_subscription.status == SubscriptionStatus.ACTIVA

    async def test_settle_rejected_while_invoices_unpaid(self, db_session: AsyncSession, active_subscription):
        sub_id = active_subscription.id
        await run_billing_cycle(db_session, date(2025, 1, 31))
        await run_billing_cycle(db_session, date(2025, 2, 16))
        assert active_subscription.status == SubscriptionStatus.MOROSA

        with pytest.raises(InvalidTransition) as excinfo:
            await subscription_service.change_status(db_session, sub_id, SubscriptionStatus.ACTIVA)
        assert excinfo.value.current == "MOROSA"
        assert excinfo.value.requested == "ACTIVA"

        await db_session.refresh(active_subscription)
        assert active_subscription.status == SubscriptionStatus.MOROSA

    async def test_settle_suspended_rejected_while_invoices_unpaid(
        self, db_session: AsyncSession, active_subscription
    ):
        sub_id = active_subscription.id
        await _unpaid_invoice(db_session, active_subscription)
        await subscription_service.change_status(db_session, sub_id, SubscriptionStatus.MOROSA, today=date(2025, 3, 1))
        await subscription_service.change_status(db_session, sub_id, SubscriptionStatus.SUSPENDIDA)

        with pytest.raises(InvalidTransition):
            await subscription_service.change_status(db_session, sub_id, SubscriptionStatus.ACTIVA)

    async def test_illegal_move(self, db_session: AsyncSession, active_subscription):
        with pytest.raises(InvalidTransition):
            await subscription_service.change_status(db_session, active_subscription.id, SubscriptionStatus.SUSPENDIDA)

    async def test_cancel_needs_reason(self, db_session: AsyncSession, active_subscription):
        with pytest.raises(ValidationError):
            await subscription_service.change_status(db_session, active_subscription.id, SubscriptionStatus.CANCELADA)
        cancelled = await subscription_service.change_status(
            db_session, active_subscription.id, SubscriptionStatus.CANCELADA, "Cierre de empresa"
        )
        assert cancelled.cancellation_reason == "Cierre de empresa"

    async def test_expire_turns_renewal_off(self, db_session: AsyncSession, active_subscription):
        expired = await subscription_service.change_status(
            db_session, active_subscription.id, SubscriptionStatus.EXPIRADA
        )
        assert expired.status == SubscriptionStatus.EXPIRADA
        assert expired.auto_renew is False

    async def test_expired_is_final(self, db_session: AsyncSession, active_subscription):
        await subscription_service.change_status(db_session, active_subscription.id, SubscriptionStatus.EXPIRADA)
        for target in SubscriptionStatus:
            with pytest.raises(InvalidTransition):
                await subscription_service.change_status(db_session, active_subscription.id, target, "x")


class TestAutoRenewAndDelete:
    async def test_toggle_auto_renew(self, db_session: AsyncSession, active_subscription):
        updated = await subscription_service.set_auto_renew(db_session, active_subscription.id, False)
        assert updated.auto_renew is False

    async def test_toggle_on_terminal_rejected(self, db_session: AsyncSession, active_subscription):
        await subscription_service.cancel_subscription(db_session, active_subscription.id, "Bye")
        with pytest.raises(InvalidTransition):
            await subscription_service.set_auto_renew(db_session, active_subscription.id, True)

    async def test_live_subscription_cannot_be_deleted(self, db_session: AsyncSession, active_subscription):
        with pytest.raises(DependencyInUse):
            await subscription_service.delete_subscription(db_session, active_subscription.id)

    async def test_terminal_subscription_without_invoices_is_deleted(
        self, db_session: AsyncSession, active_subscription
    ):
        sub_id = active_subscription.id
        await subscription_service.cancel_subscription(db_session, sub_id, "Bye")
        await subscription_service.delete_subscription(db_session, sub_id)
        with pytest.raises(NotFound):
            await subscription_service.get_subscription(db_session, sub_id)

    async def test_subscription_with_invoices_is_kept(
        self, db_session: AsyncSession, active_subscription, premium_plan
    ):
        await subscription_service.change_plan(db_session, active_subscription.id, premium_plan.id, date(2025, 1, 5))
        await subscription_service.cancel_subscription(db_session, active_subscription.id, "Bye")
        with pytest.raises(DependencyInUse):
            await subscription_service.delete_subscription(db_session, active_subscription.id)


class TestQueriesAndStatistics:
    async def test_lists(self, db_session: AsyncSession, active_subscription, trial_plan):
        other_user = await _other_user(db_session)
        trial = await subscription_service.create_subscription(
            db_session, other_user.id, trial_plan.id, start_date=START
        )
        assert await subscription_service.list_by_user(db_session, other_user.id) == [trial]
        assert await subscription_service.list_by_status(db_session, SubscriptionStatus.TRIAL) == [trial]
        assert set(await subscription_service.list_subscriptions(db_session)) == {trial, active_subscription}

    async def test_lifecycle_statistics(self, db_session: AsyncSession, active_subscription, trial_plan):
        other_user = await _other_user(db_session)
        await subscription_service.create_subscription(db_session, other_user.id, trial_plan.id, start_date=START)

        stats = await subscription_service.get_lifecycle_statistics(db_session)
        assert stats.total == 2
        assert stats.by_status["ACTIVA"] == 1
        assert stats.by_status["TRIAL"] == 1
        assert stats.by_status["EXPIRADA"] == 0
        assert stats.auto_renew_enabled == 2
        # Trials do not count as recurring revenue yet
        assert stats.monthly_recurring_revenue == Decimal("10.00")
