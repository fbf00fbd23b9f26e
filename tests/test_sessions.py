"""
Tests for session series, bookings and the rules for deleting appointments
"""

from conftest import create_series, in_days

from keepon.models import ClientSession, Payment, Sale, TrainingSession


class TestSeries:
    def test_creates_one_session_per_start(self, api, trainer):
        series = create_series(api, trainer, starts=[in_days(2), in_days(1)])
        assert len(series["sessions"]) == 2
        first = series["sessions"][0]
        assert first["price"] == "30.00"
        assert first["durationMinutes"] == 60

        response = api.get("/sessions", headers=trainer["headers"])
        assert response.status_code == 200
        starts = [s["start"] for s in response.json()]
        assert starts == sorted(starts)

    def test_requires_a_start(self, api, trainer):
        response = api.post(
            "/sessionSeries", json={"durationMinutes": 60, "starts": []}, headers=trainer["headers"]
        )
        assert response.status_code == 400
        assert response.json()["type"] == "/invalid-body"

    def test_unknown_session(self, api, trainer):
        response = api.get("/sessions/missing", headers=trainer["headers"])
        assert response.status_code == 404
        assert response.json()["title"] == "Appointment not found"


class TestBookings:
    def test_book_client_with_sale(self, api, trainer, make_client, db_session):
        client = make_client()
        session_id = create_series(api, trainer)["sessions"][0]["id"]

        response = api.post(
            f"/sessions/{session_id}/clients",
            json={"clientId": client["id"], "createSale": True},
            headers=trainer["headers"],
        )
        assert response.status_code == 201, response.text
        attendee = response.json()
        assert attendee["state"] == "confirmed"
        assert attendee["saleId"]

        sale = db_session.get(Sale, attendee["saleId"])
        assert sale.sale_product.name == "Bootcamp"
        assert str(sale.sale_product.price) == "30.00"

    def test_booking_twice_keeps_one_row(self, api, trainer, make_client, db_session):
        client = make_client()
        session_id = create_series(api, trainer)["sessions"][0]["id"]
        for _ in range(2):
            api.post(f"/sessions/{session_id}/clients", json={"clientId": client["id"]}, headers=trainer["headers"])
        assert db_session.query(ClientSession).count() == 1


class TestDeletion:
    """Paid appointments need a refund before they can go"""

    def book_with_sale(self, api, trainer, client_id):
        session_id = create_series(api, trainer)["sessions"][0]["id"]
        attendee = api.post(
            f"/sessions/{session_id}/clients",
            json={"clientId": client_id, "createSale": True},
            headers=trainer["headers"],
        ).json()
        return session_id, attendee["saleId"]

    def test_delete_unpaid_session(self, api, trainer, make_client, db_session):
        session_id, sale_id = self.book_with_sale(api, trainer, make_client()["id"])

        response = api.delete(f"/sessions/{session_id}", headers=trainer["headers"])
        assert response.status_code == 200
        assert response.json() == {"count": 1}

        db_session.expire_all()
        assert db_session.get(TrainingSession, session_id) is None
        # An unpaid sale stays with the client
        assert db_session.get(Sale, sale_id) is not None

    def test_cannot_delete_session_paid_with_money(self, api, trainer, make_client):
        session_id, sale_id = self.book_with_sale(api, trainer, make_client()["id"])
        api.post(
            "/salePayments",
            json={"saleId": sale_id, "amount": "30.00", "currency": "AUD", "method": "cash"},
            headers=trainer["headers"],
        )

        response = api.delete(f"/sessions/{session_id}", headers=trainer["headers"])
        assert response.status_code == 409
        assert response.json()["title"] == (
            "One or more clients has paid for the appointment. Please refund first before deleting."
        )

    def test_redeemed_sale_is_deleted_with_session(self, api, trainer, make_client, db_session):
        client = make_client()
        session_id, sale_id = self.book_with_sale(api, trainer, client["id"])
        sale = db_session.get(Sale, sale_id)
        sale.payment_status = "paid"
        db_session.add(
            Payment(
                trainer_id=trainer["id"],
                client_id=client["id"],
                sale_id=sale_id,
                payment_type="creditPack",
                amount=0,
                currency="AUD",
            )
        )
        db_session.commit()

        response = api.delete(f"/sessions/{session_id}", headers=trainer["headers"])
        assert response.status_code == 200

        db_session.expire_all()
        assert db_session.get(Sale, sale_id) is None

    def test_remove_paid_client(self, api, trainer, make_client):
        client = make_client()
        session_id, sale_id = self.book_with_sale(api, trainer, client["id"])
        api.post(
            "/salePayments",
            json={"saleId": sale_id, "amount": "30.00", "currency": "AUD", "method": "cash"},
            headers=trainer["headers"],
        )

        response = api.delete(f"/sessions/{session_id}/clients/{client['id']}", headers=trainer["headers"])
        assert response.status_code == 409

    def test_remove_unpaid_client(self, api, trainer, make_client, db_session):
        client = make_client()
        session_id, _ = self.book_with_sale(api, trainer, client["id"])

        response = api.delete(f"/sessions/{session_id}/clients/{client['id']}", headers=trainer["headers"])
        assert response.status_code == 200
        assert response.json() == {"count": 1}
        assert db_session.query(ClientSession).count() == 0
