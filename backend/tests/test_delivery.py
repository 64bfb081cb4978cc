"""Tests for scheduled capsule delivery and the admin trigger."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.exceptions import PersistenceFailure
from backend.app.models.capsule import Capsule, CapsuleStatus
from backend.app.models.user import User
from backend.app.services import delivery, email_service
from backend.app.services.email_service import EmailService
from backend.app.services.notification_service import NotificationType, render
from backend.tests.conftest import auth

NOW = datetime(2026, 6, 1, 9, 0, tzinfo=timezone.utc)


class FakeNotifier:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = fail_for or set()
        self.sent: list[tuple[NotificationType, str, dict[str, str]]] = []

    def send(self, notification_type: NotificationType, recipient_email: str, **kwargs: str) -> bool:
        self.sent.append((notification_type, recipient_email, kwargs))
        return recipient_email not in self.fail_for


def _capsule(db: Session, sender: User, recipient: str, due: datetime, **extra) -> Capsule:
    capsule = Capsule(
        sender_id=sender.id,
        recipient_email=recipient,
        recipient_name="Friend",
        title="Hello from the past",
        message="Remember <this>?",
        delivery_date=due,
        **extra,
    )
    db.add(capsule)
    db.commit()
    db.refresh(capsule)
    return capsule


@pytest.fixture()
def notifications_on(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "NOTIFICATION_ENABLED", True)


class TestDeliverDueCapsules:
    def test_skipped_when_notifications_disabled(self, db: Session, user: User) -> None:
        _capsule(db, user, "friend@example.com", NOW - timedelta(days=1))
        notifier = FakeNotifier()

        report = delivery.deliver_due_capsules(db, now=NOW, notifier=notifier)

        assert report.skipped
        assert notifier.sent == []

    def test_only_due_pending_capsules_sent(
        self, db: Session, user: User, notifications_on: None
    ) -> None:
        due = _capsule(db, user, "due@example.com", NOW - timedelta(hours=1))
        _capsule(db, user, "future@example.com", NOW + timedelta(days=1))
        _capsule(
            db, user, "old@example.com", NOW - timedelta(days=3), status=CapsuleStatus.DELIVERED
        )
        notifier = FakeNotifier()

        report = delivery.deliver_due_capsules(db, now=NOW, notifier=notifier)

        assert report.count == 1
        assert report.delivered == 1
        assert [s[1] for s in notifier.sent] == ["due@example.com"]
        db.refresh(due)
        assert due.status == CapsuleStatus.DELIVERED
        assert due.delivered_at is not None

    def test_failed_send_marks_capsule_failed(
        self, db: Session, user: User, notifications_on: None
    ) -> None:
        bad = _capsule(db, user, "bounce@example.com", NOW - timedelta(minutes=5))
        good = _capsule(db, user, "ok@example.com", NOW - timedelta(minutes=1))

        report = delivery.deliver_due_capsules(
            db, now=NOW, notifier=FakeNotifier(fail_for={"bounce@example.com"})
        )

        assert (report.delivered, report.failed) == (1, 1)
        db.refresh(bad)
        db.refresh(good)
        assert bad.status == CapsuleStatus.FAILED
        assert good.status == CapsuleStatus.DELIVERED

    def test_attachment_link_in_template(
        self, db: Session, user: User, notifications_on: None
    ) -> None:
        capsule = _capsule(
            db,
            user,
            "friend@example.com",
            NOW - timedelta(minutes=1),
            attachments=[{"filename": "a.png", "original_name": "a.png"}],
        )
        notifier = FakeNotifier()

        delivery.deliver_due_capsules(db, now=NOW, notifier=notifier)

        kwargs = notifier.sent[0][2]
        assert f"/capsule/{capsule.id}" in kwargs["attachments_text"]

    def test_overlapping_runs_send_each_capsule_once(
        self, db: Session, user: User, notifications_on: None
    ) -> None:
        first = _capsule(db, user, "first@example.com", NOW - timedelta(hours=2))
        second = _capsule(db, user, "second@example.com", NOW - timedelta(hours=1))
        sent: list[str] = []
        reports: list[delivery.DeliveryReport] = []

        class OverlappingNotifier(FakeNotifier):
            def send(self, notification_type, recipient_email, **kwargs):
                sent.append(recipient_email)
                if len(sent) == 1:
                    # a second worker starts while this email is in flight
                    other = Session(bind=db.get_bind())
                    try:
                        reports.append(
                            delivery.deliver_due_capsules(other, now=NOW, notifier=RecordingNotifier())
                        )
                    finally:
                        other.close()
                return True

        class RecordingNotifier(FakeNotifier):
            def send(self, notification_type, recipient_email, **kwargs):
                sent.append(recipient_email)
                return True

        report = delivery.deliver_due_capsules(db, now=NOW, notifier=OverlappingNotifier())

        assert sorted(sent) == ["first@example.com", "second@example.com"]
        assert report.count == 1
        assert reports[0].count == 1
        db.refresh(first)
        db.refresh(second)
        assert first.status == second.status == CapsuleStatus.DELIVERED

    def test_claimed_capsule_is_not_claimed_again(self, db: Session, user: User) -> None:
        capsule = _capsule(db, user, "friend@example.com", NOW - timedelta(minutes=1))
        assert delivery.claim(db, capsule.id)
        assert not delivery.claim(db, capsule.id)
        db.refresh(capsule)
        assert capsule.status == CapsuleStatus.DELIVERING

    def test_unsaved_outcome_does_not_stop_the_run(
        self,
        db: Session,
        user: User,
        notifications_on: None,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        stuck = _capsule(db, user, "stuck@example.com", NOW - timedelta(hours=2))
        fine = _capsule(db, user, "fine@example.com", NOW - timedelta(hours=1))
        record_outcome = delivery._record_outcome

        def flaky_record(session, capsule_id, sent, now):
            if capsule_id == stuck.id:
                raise PersistenceFailure()
            record_outcome(session, capsule_id, sent, now)

        monkeypatch.setattr(delivery, "_record_outcome", flaky_record)
        notifier = FakeNotifier()

        report = delivery.deliver_due_capsules(db, now=NOW, notifier=notifier)

        assert [s[1] for s in notifier.sent] == ["stuck@example.com", "fine@example.com"]
        assert report.count == 2
        db.refresh(stuck)
        db.refresh(fine)
        # left claimed, so the next run will not email it again
        assert stuck.status == CapsuleStatus.DELIVERING
        assert fine.status == CapsuleStatus.DELIVERED

        again = FakeNotifier()
        delivery.deliver_due_capsules(db, now=NOW, notifier=again)
        assert again.sent == []


class TestRender:
    def test_html_body_escapes_user_text(self) -> None:
        subject, text, body = render(
            NotificationType.CAPSULE_DELIVERY,
            recipient_name="Friend",
            title="Hi\nthere",
            message="Remember <this>?",
            attachments_text="",
            attachments_html="",
        )
        assert subject == "Time Capsule: Hi there"
        assert "Remember <this>?" in text
        assert "Remember &lt;this&gt;?" in body


class TestDeliverEndpoint:
    def test_requires_admin(self, client: TestClient, user_token: str) -> None:
        resp = client.post("/api/v1/capsules/deliver", headers=auth(user_token))
        assert resp.status_code == 403

    def test_admin_sees_disabled_delivery(self, client: TestClient, admin_token: str) -> None:
        resp = client.post("/api/v1/capsules/deliver", headers=auth(admin_token))
        assert resp.status_code == 200
        data = resp.json()
        assert data["skipped"] is True
        assert data["detail"] == "Email delivery is disabled"

    def test_admin_with_nothing_due(
        self, client: TestClient, admin_token: str, notifications_on: None
    ) -> None:
        resp = client.post("/api/v1/capsules/deliver", headers=auth(admin_token))
        assert resp.json()["detail"] == "No capsules to deliver"
        assert resp.json()["count"] == 0


class FakeSMTP:
    instances: list["FakeSMTP"] = []

    def __init__(self, host: str, port: int, timeout: int) -> None:
        self.host, self.port, self.timeout = host, port, timeout
        self.started_tls = False
        self.messages: list = []
        FakeSMTP.instances.append(self)

    def __enter__(self) -> "FakeSMTP":
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def starttls(self) -> None:
        self.started_tls = True

    def login(self, user: str, password: str) -> None:
        raise AssertionError("no credentials configured")

    def send_message(self, msg) -> None:
        self.messages.append(msg)


class TestEmailService:
    def test_disabled_sends_nothing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        FakeSMTP.instances = []
        monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)
        assert EmailService().send("a@example.com", "Hi", "<p>Hi</p>") is False
        assert FakeSMTP.instances == []

    def test_sends_multipart_message(
        self, monkeypatch: pytest.MonkeyPatch, notifications_on: None
    ) -> None:
        FakeSMTP.instances = []
        monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)

        assert EmailService().send("a@example.com", "Hi", "<p>Hi</p>", "Hi") is True

        server = FakeSMTP.instances[0]
        assert server.started_tls
        msg = server.messages[0]
        assert msg["To"] == "a@example.com"
        assert msg.get_body(preferencelist=("html",)).get_content().strip() == "<p>Hi</p>"
        assert msg.get_body(preferencelist=("plain",)).get_content().strip() == "Hi"

    def test_smtp_error_reported_as_failure(
        self, monkeypatch: pytest.MonkeyPatch, notifications_on: None
    ) -> None:
        def refuse(*args: object, **kwargs: object) -> None:
            raise ConnectionRefusedError("no server")

        monkeypatch.setattr(email_service.smtplib, "SMTP", refuse)
        assert EmailService().send("a@example.com", "Hi", "<p>Hi</p>") is False
