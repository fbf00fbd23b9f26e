"""
Tests for payment plans: the schedule, client acceptance and charging outstanding payments
"""

import json
from datetime import timedelta
from decimal import Decimal

import pytest
import stripe

from keepon.domain.plans.charging import charge_outstanding, charge_payment_plans, payment_ids_metadata
from keepon.domain.plans.repository import PaymentPlanRepository
from keepon.domain.plans.service import build_payment_schedule
from keepon.errors import (
    ChargeFailedBecauseNotVerified,
    NoPaymentMethodOnFile,
    StripeConfigurationMissing,
    StripePaymentsBlocked,
)
from keepon.models import (
    Client,
    Mail,
    Mission,
    PaymentPlan,
    PaymentPlanAcceptance,
    Reward,
    Trainer,
    WorkflowOutbox,
)
from keepon.shared.dates import utcnow


@pytest.fixture
def plan_client(make_client, client_headers, db_session):
    """A client with a saved card"""
    created = make_client()
    row = db_session.get(Client, created["id"])
    row.stripe_customer_id = "cus_saved"
    db_session.commit()
    return {"id": created["id"], "headers": client_headers(created["id"])}


@pytest.fixture
def create_plan(api, trainer):
    def _create(client_id, amount="50.00", weeks=3, start=None, interval=1):
        start = start or utcnow() - timedelta(hours=1)
        response = api.post(
            f"/clients/{client_id}/plans",
            json={
                "name": "Weekly PT",
                "amount": amount,
                "start": start.isoformat(),
                "end": (start + timedelta(weeks=weeks)).isoformat(),
                "frequencyWeeklyInterval": interval,
            },
            headers=trainer["headers"],
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _create


def accept(api, plan_client, plan_id):
    return api.post(
        f"/clientDashboard/plans/{plan_id}/accept",
        headers={**plan_client["headers"], "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )


def notify_tasks(db_session):
    return db_session.query(WorkflowOutbox).filter(WorkflowOutbox.task_type == "user.notify").all()


class TestSchedule:
    def test_weekly_dates_stop_before_end(self):
        start = utcnow()
        dates = build_payment_schedule(start, start + timedelta(weeks=3), 1)
        assert dates == [start, start + timedelta(weeks=1), start + timedelta(weeks=2)]

    def test_fortnightly(self):
        start = utcnow()
        assert len(build_payment_schedule(start, start + timedelta(weeks=8, days=1), 2)) == 5


class TestPlanManagement:
    """Trainer endpoints"""

    def test_create_plan(self, create_plan, plan_client):
        plan = create_plan(plan_client["id"])
        assert plan["status"] == "pending"
        assert plan["currency"] == "AUD"
        assert len(plan["payments"]) == 3
        assert all(p["amountOutstanding"] == "50.00" for p in plan["payments"])

    def test_end_must_follow_start(self, api, trainer, plan_client):
        now = utcnow()
        response = api.post(
            f"/clients/{plan_client['id']}/plans",
            json={"name": "Bad", "amount": "10", "start": now.isoformat(), "end": now.isoformat()},
            headers=trainer["headers"],
        )
        assert response.status_code == 400

    def test_cancel_plan(self, api, trainer, create_plan, plan_client):
        plan = create_plan(plan_client["id"])
        response = api.post(f"/plans/{plan['id']}/cancel", headers=trainer["headers"])
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert {p["status"] for p in response.json()["payments"]} == {"cancelled"}

        response = accept(api, plan_client, plan["id"])
        assert response.status_code == 409
        assert response.json()["type"] == "/subscription-is-cancelled"

    def test_unknown_plan(self, api, trainer):
        response = api.get("/plans/missing", headers=trainer["headers"])
        assert response.status_code == 404
        assert response.json()["type"] == "/subscription-not-found"


class TestAcceptance:
    """POST /clientDashboard/plans/{id}/accept"""

    def test_accept_activates_plan(self, api, trainer, create_plan, plan_client, db_session):
        plan = create_plan(plan_client["id"])

        response = accept(api, plan_client, plan["id"])
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "active"
        assert response.json()["acceptedAmount"] == "50.00"

        acceptance = db_session.query(PaymentPlanAcceptance).one()
        assert acceptance.ip_address == "203.0.113.7"
        assert acceptance.amount == Decimal("50.00")

        mission = db_session.query(Mission).filter(Mission.trainer_id == trainer["id"]).one()
        assert mission.completed_at is not None
        reward = db_session.query(Reward).one()
        assert reward.reward_type == "3TextCredits"
        assert mission.reward_id == reward.id

        keys = {t.dedupe_key for t in db_session.query(WorkflowOutbox).all()}
        assert f"payment-plan.charge-outstanding:{plan['id']}" in keys
        assert f"user.notify:planAccept:{plan['id']}:termsAccepted" in keys
        assert f"user.notify:planAccept:{plan['id']}:firstSubscription" in keys

    def test_second_plan_does_not_repeat_mission(self, api, create_plan, plan_client, db_session):
        first = create_plan(plan_client["id"])
        second = create_plan(plan_client["id"])
        accept(api, plan_client, first["id"])
        accept(api, plan_client, second["id"])

        assert db_session.query(Reward).count() == 1
        keys = {t.dedupe_key for t in db_session.query(WorkflowOutbox).all()}
        assert f"user.notify:planAccept:{second['id']}:firstSubscription" not in keys

    def test_requires_saved_card(self, api, create_plan, make_client, client_headers):
        created = make_client(first_name="Casey", email="casey@example.com")
        plan = create_plan(created["id"])
        response = accept(api, {"headers": client_headers(created["id"])}, plan["id"])
        assert response.status_code == 409
        assert response.json()["type"] == "/no-payment-method-on-file"

    def test_other_clients_plan(self, api, create_plan, plan_client, make_client, client_headers):
        other = make_client(first_name="Casey", email="casey@example.com")
        plan = create_plan(other["id"])
        response = accept(api, plan_client, plan["id"])
        assert response.status_code == 404

    def test_retry_counts_due_payments(self, api, create_plan, plan_client):
        plan = create_plan(plan_client["id"])
        accept(api, plan_client, plan["id"])

        response = api.post(f"/clientDashboard/plans/{plan['id']}/retry", headers=plan_client["headers"])
        assert response.status_code == 200
        assert response.json() == {"attempted": 1, "succeeded": True}


class TestChargeOutstanding:
    """Charging due payments in one off-session payment intent"""

    @pytest.fixture
    def active_plan(self, api, connect_trainer, create_plan, plan_client):
        connect_trainer("custom")
        plan = create_plan(plan_client["id"])
        assert accept(api, plan_client, plan["id"]).status_code == 200
        return plan

    def test_charges_due_payments(self, db_session, stripe_gateway, active_plan):
        intent_id = charge_outstanding(db_session, stripe_gateway, active_plan["id"])
        assert intent_id == "pi_1"

        [params] = stripe_gateway.intent_params()
        assert params["amount"] == 5000
        assert params["customer"] == "cus_saved"
        assert params["off_session"] is True
        assert params["error_on_requires_action"] is True
        # 50.00 * 2.4% + 0.40
        assert params["application_fee_amount"] == 160
        assert params["transfer_data"] == {"destination": "acct_123"}
        assert params["metadata"]["percentageFee"] == "0.024"
        assert len(json.loads(params["metadata"]["paymentPlanPaymentIds_0"])) == 1

        db_session.expire_all()
        plan = db_session.get(PaymentPlan, active_plan["id"])
        statuses = [p.status for p in plan.payments]
        assert statuses == ["paid", "pending", "pending"]
        assert plan.payments[0].amount_outstanding == 0
        assert plan.payments[0].fee == Decimal("1.60")
        assert plan.payments[0].stripe_payment_intent_id == "pi_1"

    def test_nothing_due(self, db_session, stripe_gateway, active_plan):
        charge_outstanding(db_session, stripe_gateway, active_plan["id"])
        assert charge_outstanding(db_session, stripe_gateway, active_plan["id"]) is None
        assert len(stripe_gateway.intent_params()) == 1

    def test_standard_account_fee_excludes_stripe_fee(
        self, api, connect_trainer, create_plan, plan_client, db_session, stripe_gateway
    ):
        connect_trainer("standard", "acct_std")
        plan = create_plan(plan_client["id"])
        accept(api, plan_client, plan["id"])

        charge_outstanding(db_session, stripe_gateway, plan["id"])
        call = next(c for c in stripe_gateway.calls if c[0] == "create_payment_intent")
        # 1.60 ours minus 1.18 Stripe takes (50.00 * 1.75% + 0.30)
        assert call[1]["application_fee_amount"] == 42
        assert call[2] == "acct_std"

    def test_card_declined_rejects_payments(self, db_session, stripe_gateway, active_plan):
        stripe_gateway.create_error = stripe.CardError("Your card was declined.", None, "card_declined")

        with pytest.raises(stripe.CardError):
            charge_outstanding(db_session, stripe_gateway, active_plan["id"])

        db_session.expire_all()
        payment = db_session.get(PaymentPlan, active_plan["id"]).payments[0]
        assert payment.status == "rejected"
        assert payment.retry_count == 1
        assert payment.last_retry_time is not None
        assert payment.amount_outstanding == Decimal("50.00")

        mail = db_session.query(Mail).filter(Mail.subject.like("%Subscription Payment Failed")).one()
        assert mail.to_email == "alex@example.com"

        # Rejected payments wait for the scheduler's retry interval, manual retries don't
        now = utcnow()
        assert PaymentPlanRepository.due_payments_query(db_session, active_plan["id"], now, True).count() == 0
        assert PaymentPlanRepository.due_payments_query(db_session, active_plan["id"], now, False).count() == 1
        later = now + timedelta(hours=17)
        assert PaymentPlanRepository.due_payments_query(db_session, active_plan["id"], later, True).count() >= 1

    def test_missing_customer_is_cleared(self, db_session, stripe_gateway, active_plan, plan_client):
        error = stripe.InvalidRequestError("No such customer", None, code="resource_missing")
        stripe_gateway.list_error = error

        with pytest.raises(NoPaymentMethodOnFile):
            charge_outstanding(db_session, stripe_gateway, active_plan["id"])

        db_session.expire_all()
        assert db_session.get(Client, plan_client["id"]).stripe_customer_id is None

    def test_extra_cards_are_detached(self, db_session, stripe_gateway, active_plan):
        stripe_gateway.payment_methods = [stripe_gateway._card("pm_a"), stripe_gateway._card("pm_b")]
        charge_outstanding(db_session, stripe_gateway, active_plan["id"])

        assert ("detach_payment_method", "pm_b", None) in stripe_gateway.calls
        assert stripe_gateway.intent_params()[0]["payment_method"] == "pm_a"

    def test_requires_gateway(self, db_session, active_plan):
        with pytest.raises(StripeConfigurationMissing):
            charge_outstanding(db_session, None, active_plan["id"])

    @pytest.mark.parametrize(
        "error",
        [
            stripe.InvalidRequestError("Payouts are not allowed", None, code="payouts_not_allowed"),
            stripe.APIError("Payouts are not allowed", code="payouts_not_allowed"),
        ],
    )
    def test_payouts_not_allowed_asks_for_verification(self, db_session, stripe_gateway, active_plan, error):
        stripe_gateway.create_error = error

        with pytest.raises(ChargeFailedBecauseNotVerified):
            charge_outstanding(db_session, stripe_gateway, active_plan["id"])

        db_session.expire_all()
        titles = [t.payload["title"] for t in notify_tasks(db_session)]
        assert "Charge failed - Verification required" in titles
        payment = db_session.get(PaymentPlan, active_plan["id"]).payments[0]
        assert payment.status == "pending"
        assert payment.retry_count == 0

    def test_manual_charge_with_payments_blocked_leaves_payments(
        self, db_session, stripe_gateway, active_plan, trainer
    ):
        db_session.get(Trainer, trainer["id"]).stripe_payments_blocked = True
        db_session.commit()

        with pytest.raises(StripePaymentsBlocked):
            charge_outstanding(db_session, stripe_gateway, active_plan["id"])

        db_session.expire_all()
        payment = db_session.get(PaymentPlan, active_plan["id"]).payments[0]
        assert payment.status == "pending"
        assert payment.retry_count == 0


class TestScheduler:
    def test_queues_due_plans_and_ends_expired(self, api, create_plan, plan_client, db_session):
        due = create_plan(plan_client["id"])
        accept(api, plan_client, due["id"])
        expired = create_plan(plan_client["id"], weeks=1, start=utcnow() - timedelta(weeks=2))
        accept(api, plan_client, expired["id"])

        queued = charge_payment_plans(db_session)
        assert queued >= 1

        db_session.expire_all()
        assert db_session.get(PaymentPlan, expired["id"]).status == "ended"
        assert db_session.get(PaymentPlan, due["id"]).status == "active"
        assert (
            db_session.query(WorkflowOutbox)
            .filter(WorkflowOutbox.dedupe_key == f"payment-plan.charge-outstanding:{due['id']}")
            .count()
            == 1
        )

    def test_scheduled_failure_rejects_payments_whatever_the_cause(
        self, api, connect_trainer, create_plan, plan_client, trainer, db_session, stripe_gateway
    ):
        connect_trainer("custom")
        plan = create_plan(plan_client["id"])
        accept(api, plan_client, plan["id"])
        db_session.get(Trainer, trainer["id"]).stripe_payments_blocked = True
        db_session.commit()

        with pytest.raises(StripePaymentsBlocked):
            charge_outstanding(db_session, stripe_gateway, plan["id"], for_scheduled_task=True)

        db_session.expire_all()
        payment = db_session.get(PaymentPlan, plan["id"]).payments[0]
        assert payment.status == "rejected"
        assert payment.retry_count == 1

        bodies = [t.payload["body"] for t in notify_tasks(db_session)]
        assert "A payment for Subscription: Weekly PT has failed. We will try again tomorrow" in bodies
        # Blocked payments are for the trainer to sort out, the client gets no mail
        assert db_session.query(Mail).filter(Mail.subject.like("%Subscription Payment Failed")).count() == 0

        # Within the retry interval the scheduler leaves the payment alone
        assert charge_outstanding(db_session, stripe_gateway, plan["id"], for_scheduled_task=True) is None

    def test_scheduled_verification_failure_also_rejects(
        self, api, connect_trainer, create_plan, plan_client, db_session, stripe_gateway
    ):
        connect_trainer("custom")
        plan = create_plan(plan_client["id"])
        accept(api, plan_client, plan["id"])
        stripe_gateway.create_error = stripe.InvalidRequestError(
            "Payouts are not allowed", None, code="payouts_not_allowed"
        )

        with pytest.raises(ChargeFailedBecauseNotVerified):
            charge_outstanding(db_session, stripe_gateway, plan["id"], for_scheduled_task=True)

        db_session.expire_all()
        assert db_session.get(PaymentPlan, plan["id"]).payments[0].status == "rejected"
        tasks = notify_tasks(db_session)
        assert "Charge failed - Verification required" in [t.payload["title"] for t in tasks]
        assert "A payment for Subscription: Weekly PT has failed. We will try again tomorrow" in [
            t.payload["body"] for t in tasks
        ]

    def test_client_retry_overrides_waiting_scheduled_charge(self, api, create_plan, plan_client, db_session):
        plan = create_plan(plan_client["id"])
        accept(api, plan_client, plan["id"])
        key = f"payment-plan.charge-outstanding:{plan['id']}"
        db_session.query(WorkflowOutbox).filter(WorkflowOutbox.dedupe_key == key).one().status = "completed"
        db_session.commit()

        charge_payment_plans(db_session)
        db_session.expire_all()
        task = db_session.query(WorkflowOutbox).filter(WorkflowOutbox.dedupe_key == key).one()
        assert task.status == "pending"
        assert task.payload["forScheduledTask"] is True

        response = api.post(f"/clientDashboard/plans/{plan['id']}/retry", headers=plan_client["headers"])
        assert response.status_code == 200

        db_session.expire_all()
        task = db_session.query(WorkflowOutbox).filter(WorkflowOutbox.dedupe_key == key).one()
        assert task.payload["forScheduledTask"] is False


class TestPaymentIdsMetadata:
    def test_values_stay_under_limit(self):
        ids = [f"{i:08d}-0000-0000-0000-000000000000" for i in range(40)]
        metadata = payment_ids_metadata(ids)

        assert len(metadata) > 1
        assert all(len(value) <= 500 for value in metadata.values())
        collected = [pid for key in sorted(metadata, key=lambda k: int(k.rsplit("_", 1)[1])) for pid in json.loads(metadata[key])]
        assert collected == ids
