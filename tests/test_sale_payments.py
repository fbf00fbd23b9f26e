"""
Tests for manual sale payments, payment history and client dashboard card payments
"""

from types import SimpleNamespace

import pytest
import stripe

from keepon.models import Client, Payment, Sale, WorkflowOutbox


@pytest.fixture
def paying_client(make_client, client_headers):
    created = make_client()
    return {"id": created["id"], "headers": client_headers(created["id"])}


def card_payment(api, paying_client, sale_id, amount="100.00", **extra):
    body = {"saleId": sale_id, "amount": amount, "currency": "AUD", "stripePaymentMethodId": "pm_card", **extra}
    return api.post("/clientDashboard/salePayments", json=body, headers=paying_client["headers"])


def saved_intent(amount=10000, application_fee_amount=280):
    """A payment intent the client dashboard set up before confirming"""
    return SimpleNamespace(
        id="pi_existing",
        amount=amount,
        application_fee_amount=application_fee_amount,
        payment_method=SimpleNamespace(id="pm_saved", card=SimpleNamespace(country="AU")),
    )


class TestManualPayments:
    """POST /salePayments"""

    def test_records_payment_and_marks_sale_paid(self, api, trainer, make_client, make_sale, db_session):
        client = make_client()
        sale = make_sale(client["id"])

        response = api.post(
            "/salePayments",
            json={"saleId": sale["id"], "amount": "100.00", "currency": "AUD", "method": "cash"},
            headers=trainer["headers"],
        )
        assert response.status_code == 201, response.text
        data = response.json()
        assert data["type"] == "manual"
        assert data["method"] == "cash"
        assert data["currency"] == "AUD"
        assert data["amount"] == "100.00"

        assert db_session.get(Sale, sale["id"]).payment_status == "paid"

    def test_amount_must_match_price(self, api, trainer, make_client, make_sale):
        sale = make_sale(make_client()["id"])
        response = api.post(
            "/salePayments",
            json={"saleId": sale["id"], "amount": "90.00", "currency": "AUD", "method": "electronic"},
            headers=trainer["headers"],
        )
        assert response.status_code == 400
        assert response.json()["type"] == "/payment-amount-mismatch"

    def test_sale_can_only_be_paid_once(self, api, trainer, make_client, make_sale):
        sale = make_sale(make_client()["id"])
        body = {"saleId": sale["id"], "amount": "100.00", "currency": "AUD", "method": "cash"}
        assert api.post("/salePayments", json=body, headers=trainer["headers"]).status_code == 201

        response = api.post("/salePayments", json=body, headers=trainer["headers"])
        assert response.status_code == 409
        assert response.json()["type"] == "/sale-already-paid"

    def test_unknown_sale(self, api, trainer):
        response = api.post(
            "/salePayments",
            json={"saleId": "missing", "amount": "1.00", "currency": "AUD", "method": "cash"},
            headers=trainer["headers"],
        )
        assert response.status_code == 404


class TestPaymentHistory:
    """GET /salePayments for trainers and clients"""

    def test_client_sees_only_own_payments(self, api, trainer, make_client, make_sale, client_headers):
        first = make_client(first_name="Alex", email="alex@example.com")
        second = make_client(first_name="Blair", email="blair@example.com")
        for client in (first, second):
            sale = make_sale(client["id"])
            api.post(
                "/salePayments",
                json={"saleId": sale["id"], "amount": "100.00", "currency": "AUD", "method": "cash"},
                headers=trainer["headers"],
            )

        assert len(api.get("/salePayments", headers=trainer["headers"]).json()) == 2

        headers = client_headers(first["id"])
        response = api.get("/salePayments", headers=headers)
        assert response.status_code == 200
        assert [p["clientId"] for p in response.json()] == [first["id"]]

        response = api.get("/salePayments", params={"clientId": second["id"]}, headers=headers)
        assert response.status_code == 403


class TestCardPayments:
    """POST /clientDashboard/salePayments"""

    def test_successful_payment(
        self, api, connect_trainer, make_sale, paying_client, stripe_gateway, db_session
    ):
        connect_trainer("custom")
        sale = make_sale(paying_client["id"])

        response = card_payment(api, paying_client, sale["id"])
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["amount"] == "100"
        assert data["transactionFee"] == "2.8"
        assert data["feePassedOn"] is False
        assert data["stripePaymentIntentId"] == "pi_1"

        [params] = stripe_gateway.intent_params()
        assert params["amount"] == 10000
        assert params["currency"] == "aud"
        assert params["application_fee_amount"] == 280
        assert params["on_behalf_of"] == "acct_123"
        assert params["transfer_data"] == {"destination": "acct_123"}
        assert params["receipt_email"] == "alex@example.com"

        db_session.expire_all()
        payment = db_session.get(Payment, data["paymentId"])
        assert payment.payment_type == "stripe"
        assert payment.stripe_charge_id == "ch_1"
        assert db_session.get(Sale, sale["id"]).payment_status == "paid"
        assert db_session.get(Client, paying_client["id"]).stripe_customer_id == "cus_1"

        task = db_session.query(WorkflowOutbox).filter(
            WorkflowOutbox.dedupe_key == f"user.notify:salePayment:{payment.id}"
        ).one()
        assert task.payload["body"].startswith("Payment Processed!")

    def test_standard_account_charges_on_connected_account(
        self, api, connect_trainer, make_sale, paying_client, stripe_gateway
    ):
        connect_trainer("standard", "acct_std")
        sale = make_sale(paying_client["id"])

        assert card_payment(api, paying_client, sale["id"]).status_code == 200

        call = next(c for c in stripe_gateway.calls if c[0] == "create_payment_intent")
        params, stripe_account = call[1], call[2]
        assert stripe_account == "acct_std"
        assert "on_behalf_of" not in params
        assert "transfer_data" not in params

    def test_fee_passed_on(self, api, connect_trainer, make_sale, paying_client, stripe_gateway, db_session):
        connect_trainer()
        sale = make_sale(paying_client["id"], paymentRequestPassOnTransactionFee=True)

        response = card_payment(api, paying_client, sale["id"])
        assert response.status_code == 200, response.text
        assert response.json()["amount"] == "102.87"
        assert response.json()["feePassedOn"] is True

        [params] = stripe_gateway.intent_params()
        assert params["amount"] == 10287
        assert params["application_fee_amount"] == 287

        db_session.expire_all()
        payment = db_session.get(Payment, response.json()["paymentId"])
        assert str(payment.amount) == "102.87"

    def test_amount_mismatch(self, api, connect_trainer, make_sale, paying_client):
        connect_trainer()
        sale = make_sale(paying_client["id"])
        response = card_payment(api, paying_client, sale["id"], amount="99.00")
        assert response.status_code == 400
        assert response.json()["type"] == "/payment-amount-mismatch"

    def test_exactly_one_stripe_source(self, api, make_sale, paying_client):
        sale = make_sale(paying_client["id"])
        response = card_payment(api, paying_client, sale["id"], stripePaymentIntentId="pi_existing")
        assert response.status_code == 400
        assert response.json()["type"] == "/invalid-body"

    def test_trainer_without_connected_account(self, api, make_sale, paying_client, db_session):
        sale = make_sale(paying_client["id"])
        response = card_payment(api, paying_client, sale["id"])
        assert response.status_code == 409
        assert response.json()["type"] == "/stripe-payments-disabled"
        assert db_session.query(Payment).count() == 0

    def test_requires_action_rolls_back(
        self, api, connect_trainer, make_sale, paying_client, stripe_gateway, db_session
    ):
        connect_trainer()
        stripe_gateway.intent_status = "requires_action"
        sale = make_sale(paying_client["id"])

        response = card_payment(api, paying_client, sale["id"])
        assert response.status_code == 402
        body = response.json()
        assert body["type"] == "/stripe-action-required"
        assert body["requiresAction"] is True
        assert body["clientSecret"] == "pi_1_secret"

        db_session.expire_all()
        assert db_session.query(Payment).count() == 0
        assert db_session.get(Sale, sale["id"]).payment_status == "none"
        assert db_session.query(WorkflowOutbox).filter(WorkflowOutbox.task_type == "user.notify").count() == 0

    def test_unverified_destination_notifies_trainer(
        self, api, connect_trainer, make_sale, paying_client, stripe_gateway, db_session
    ):
        connect_trainer()
        stripe_gateway.create_error = stripe.InvalidRequestError(
            "Your destination account needs to have at least one of the following capabilities "
            "enabled: transfers, legacy_payments",
            None,
        )
        sale = make_sale(paying_client["id"])

        response = card_payment(api, paying_client, sale["id"])
        assert response.status_code == 409
        assert response.json()["type"] == "/service-provider-cant-take-payments"

        db_session.expire_all()
        assert db_session.query(Payment).count() == 0
        [task] = db_session.query(WorkflowOutbox).filter(WorkflowOutbox.task_type == "user.notify").all()
        assert task.dedupe_key.startswith("user.notify:salePaymentFailed:")
        assert task.payload["title"] == "Attempted payment failed!"
        assert "aren't verified" in task.payload["body"]

    def test_card_declined(self, api, connect_trainer, make_sale, paying_client, stripe_gateway, db_session):
        connect_trainer()
        stripe_gateway.create_error = stripe.CardError("Your card was declined.", None, "card_declined")
        sale = make_sale(paying_client["id"])

        response = card_payment(api, paying_client, sale["id"])
        assert response.status_code == 402
        assert response.json()["type"] == "/stripe-error"
        assert "declined" in response.json()["detail"]

        db_session.expire_all()
        assert db_session.get(Sale, sale["id"]).payment_status == "none"

    def test_paid_sale_is_rejected(self, api, connect_trainer, make_sale, paying_client):
        connect_trainer()
        sale = make_sale(paying_client["id"])
        assert card_payment(api, paying_client, sale["id"]).status_code == 200

        response = card_payment(api, paying_client, sale["id"])
        assert response.status_code == 409
        assert response.json()["type"] == "/sale-already-paid"


class TestExistingPaymentIntent:
    """Card payments confirmed against an intent the dashboard already created"""

    def test_confirms_matching_intent(
        self, api, connect_trainer, make_sale, paying_client, stripe_gateway, db_session
    ):
        connect_trainer()
        stripe_gateway.existing_intent = saved_intent()
        sale = make_sale(paying_client["id"])

        response = card_payment(
            api, paying_client, sale["id"], stripePaymentMethodId=None, stripePaymentIntentId="pi_existing"
        )
        assert response.status_code == 200, response.text
        assert response.json()["stripePaymentIntentId"] == "pi_existing"

        assert ("confirm_payment_intent", "pi_existing", None) in stripe_gateway.calls
        assert stripe_gateway.intent_params() == []

        db_session.expire_all()
        payment = db_session.get(Payment, response.json()["paymentId"])
        assert payment.stripe_charge_id == "ch_confirmed"
        assert db_session.get(Sale, sale["id"]).payment_status == "paid"

    @pytest.mark.parametrize("amount, application_fee_amount", [(9000, 280), (10000, 100)])
    def test_mismatched_intent_is_refused(
        self, api, connect_trainer, make_sale, paying_client, stripe_gateway, db_session, amount, application_fee_amount
    ):
        connect_trainer()
        stripe_gateway.existing_intent = saved_intent(amount, application_fee_amount)
        sale = make_sale(paying_client["id"])

        response = card_payment(
            api, paying_client, sale["id"], stripePaymentMethodId=None, stripePaymentIntentId="pi_existing"
        )
        assert response.status_code == 409
        assert response.json()["type"] == "/stripe-payment-intent-mismatch"
        assert not any(call[0] == "confirm_payment_intent" for call in stripe_gateway.calls)

        db_session.expire_all()
        assert db_session.query(Payment).count() == 0
        assert db_session.get(Sale, sale["id"]).payment_status == "none"
