"""
Tests for the workflow outbox, its dispatcher and the notification feed
"""

from datetime import timedelta

import pytest

from keepon.database import SessionLocal
from keepon.email_service import queue_mail
from keepon.models import Mail, Notification, WorkflowOutbox
from keepon.shared.dates import utcnow
from keepon.workflow.dispatcher import TASK_HANDLERS, process_outbox
from keepon.workflow.outbox import (
    TASK_CHARGE_OUTSTANDING,
    TASK_USER_NOTIFY,
    enqueue_workflow_task,
    notify_user,
    retry_delay,
)


class TestEnqueue:
    def test_dedupe_key_is_not_duplicated(self, db_session):
        first = enqueue_workflow_task(db_session, "test.task", {"n": 1}, dedupe_key="test:1")
        second = enqueue_workflow_task(db_session, "test.task", {"n": 2}, dedupe_key="test:1")
        db_session.commit()

        assert first == second
        task = db_session.query(WorkflowOutbox).one()
        assert task.payload == {"n": 1}

    def test_requeue_finished_task(self, db_session):
        task_id = enqueue_workflow_task(db_session, "test.task", {"n": 1}, dedupe_key="test:1")
        task = db_session.get(WorkflowOutbox, task_id)
        task.status = "completed"
        task.attempts = 3
        db_session.commit()

        enqueue_workflow_task(db_session, "test.task", {"n": 2}, dedupe_key="test:1", requeue_finished=True)
        db_session.commit()

        task = db_session.get(WorkflowOutbox, task_id)
        assert task.status == "pending"
        assert task.attempts == 0
        assert task.payload == {"n": 2}

    def test_pending_task_is_not_requeued(self, db_session):
        task_id = enqueue_workflow_task(db_session, "test.task", {"n": 1}, dedupe_key="test:1")
        enqueue_workflow_task(db_session, "test.task", {"n": 2}, dedupe_key="test:1", requeue_finished=True)
        assert db_session.get(WorkflowOutbox, task_id).payload == {"n": 1}

    @pytest.mark.parametrize("attempts", [1, 5, 12, 40])
    def test_retry_delay_bounds(self, attempts):
        delay = retry_delay(attempts)
        assert timedelta(seconds=5) <= delay <= timedelta(hours=1)


class TestQueueMail:
    def test_mjml_is_compiled_to_html(self, db_session):
        mail = queue_mail(
            db_session,
            to_email="alex@example.com",
            subject="Hi",
            mjml_content="<mjml><mj-body><mj-section><mj-column><mj-text>Hello Alex</mj-text></mj-column></mj-section></mj-body></mjml>",
            from_email="noreply@example.com",
        )
        db_session.commit()

        assert mail.html.lower().startswith("<!doctype html>")
        assert "Hello Alex" in mail.html
        assert "<mj-text>" not in mail.html
        task = db_session.query(WorkflowOutbox).one()
        assert task.task_type == "mail.send"
        assert task.payload == {"mailId": mail.id}


class TestDispatcher:
    """process_outbox claims due tasks and runs them in their own session"""

    def test_user_notify_creates_notification(self, db_session, trainer):
        notify_user(db_session, trainer["userId"], "Hello", "World", message_type="success")
        db_session.commit()

        assert process_outbox(SessionLocal) == {"claimed": 1, "completed": 1}

        db_session.expire_all()
        notification = db_session.query(Notification).one()
        assert notification.title == "Hello"
        assert notification.message_type == "success"
        assert db_session.query(WorkflowOutbox).one().status == "completed"

    def test_mail_is_skipped_without_resend_key(self, db_session):
        mail = queue_mail(
            db_session,
            to_email="alex@example.com",
            subject="Hi",
            mjml_content="<mjml><mj-body><mj-section><mj-column><mj-text>Hi</mj-text></mj-column></mj-section></mj-body></mjml>",
            from_email="noreply@example.com",
        )
        db_session.commit()

        process_outbox(SessionLocal)

        db_session.expire_all()
        mail = db_session.get(Mail, mail.id)
        assert mail.skipped is True
        assert mail.sent_time is None

    def test_tasks_in_the_future_wait(self, db_session):
        enqueue_workflow_task(db_session, TASK_USER_NOTIFY, {}, available_at=utcnow() + timedelta(minutes=5))
        db_session.commit()
        assert process_outbox(SessionLocal)["claimed"] == 0

    def test_unknown_task_type_fails(self, db_session):
        task_id = enqueue_workflow_task(db_session, "nobody.handles.this", {})
        db_session.commit()

        assert process_outbox(SessionLocal) == {"claimed": 1, "completed": 0}

        db_session.expire_all()
        task = db_session.get(WorkflowOutbox, task_id)
        assert task.status == "failed"
        assert "No handler" in task.last_error

    def test_failure_retries_with_backoff(self, db_session, monkeypatch):
        def flaky(db, payload):
            raise RuntimeError("boom")

        monkeypatch.setitem(TASK_HANDLERS, "test.flaky", flaky)
        task_id = enqueue_workflow_task(db_session, "test.flaky", {}, max_attempts=2)
        db_session.commit()

        process_outbox(SessionLocal)
        db_session.expire_all()
        task = db_session.get(WorkflowOutbox, task_id)
        assert task.status == "pending"
        assert task.attempts == 1
        assert task.last_error == "RuntimeError: boom"
        assert task.available_at > utcnow()

        task.available_at = utcnow() - timedelta(seconds=1)
        db_session.commit()
        process_outbox(SessionLocal)

        db_session.expire_all()
        task = db_session.get(WorkflowOutbox, task_id)
        assert task.status == "failed"
        assert task.attempts == 2

    def test_failed_handler_rolls_back_its_writes(self, db_session, trainer, monkeypatch):
        def half_done(db, payload):
            db.add(Notification(user_id=trainer["userId"], title="partial", body="partial"))
            db.flush()
            raise RuntimeError("boom")

        monkeypatch.setitem(TASK_HANDLERS, "test.half", half_done)
        enqueue_workflow_task(db_session, "test.half", {})
        db_session.commit()

        process_outbox(SessionLocal)
        db_session.expire_all()
        assert db_session.query(Notification).count() == 0

    def test_charge_without_stripe_fails_immediately(self, db_session):
        task_id = enqueue_workflow_task(db_session, TASK_CHARGE_OUTSTANDING, {"paymentPlanId": "missing"})
        db_session.commit()

        process_outbox(SessionLocal)

        db_session.expire_all()
        task = db_session.get(WorkflowOutbox, task_id)
        assert task.status == "failed"
        assert task.attempts == 1
        assert task.last_error.startswith("NonRetryableTaskError")

    def test_batch_limit(self, db_session):
        for i in range(3):
            enqueue_workflow_task(db_session, "nobody.handles.this", {"n": i})
        db_session.commit()

        assert process_outbox(SessionLocal, limit=2)["claimed"] == 2
        assert process_outbox(SessionLocal, limit=2)["claimed"] == 1


class TestNotificationFeed:
    """GET /notifications and POST /notifications/{id}/view"""

    @pytest.fixture
    def notifications(self, db_session, trainer):
        for title in ("First", "Second"):
            notify_user(db_session, trainer["userId"], title, f"{title} body")
        db_session.commit()
        process_outbox(SessionLocal)
        db_session.expire_all()
        return {n.title: n.id for n in db_session.query(Notification).all()}

    def test_list_and_mark_viewed(self, api, trainer, notifications):
        response = api.get("/notifications", headers=trainer["headers"])
        assert response.status_code == 200
        assert {n["title"] for n in response.json()} == {"First", "Second"}
        assert all(n["viewed"] is False for n in response.json())

        response = api.post(f"/notifications/{notifications['First']}/view", headers=trainer["headers"])
        assert response.status_code == 200
        assert response.json()["viewed"] is True

        response = api.get("/notifications", params={"unreadOnly": True}, headers=trainer["headers"])
        assert [n["title"] for n in response.json()] == ["Second"]

    def test_unknown_notification(self, api, trainer):
        response = api.post("/notifications/missing/view", headers=trainer["headers"])
        assert response.status_code == 404
        assert response.json()["type"] == "/notification-not-found"

    def test_other_users_notifications_are_hidden(self, api, notifications):
        other = api.post(
            "/trainers",
            json={"email": "other@example.com", "password": "correct-horse", "firstName": "Jo", "country": "AU"},
        ).json()
        headers = {"Authorization": f"Bearer {other['token']}"}

        assert api.get("/notifications", headers=headers).json() == []
        assert api.post(f"/notifications/{notifications['First']}/view", headers=headers).status_code == 404
