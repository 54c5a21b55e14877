from datetime import datetime, timedelta, timezone
from unittest import mock

from triply.core.config import settings
from triply.models.outbox import OutboxEvent
from triply.services import booking_service, outbox_service
from triply.tasks import worker_jobs

from support import DatabaseTestCase


class TestOutbox(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.schedule = self.make_schedule(capacity=10)

    def test_unknown_kind_is_rejected(self):
        """Test only registered event kinds can be queued"""
        with self.assertRaises(ValueError):
            outbox_service.enqueue(self.db, "sms.send", {})

    def test_retry_until_sent(self):
        """Test a failed event is retried by the worker and marked sent"""
        self.send_email.side_effect = RuntimeError("smtp down")
        b = booking_service.create_booking(self.db, self.user_a.id, self.schedule.id, [1])
        self.assertEqual(outbox_service.outbox_status(self.db)["failed"], 2)

        self.send_email.side_effect = None
        result = outbox_service.process_pending(self.db)
        self.assertEqual(result, {"sent": 2, "failed": 0, "processed": 2})
        events = outbox_service.list_events(self.db, booking_ref=b.booking_ref)
        self.assertEqual({e.status for e in events}, {"sent"})
        self.assertTrue(all(e.processed_at is not None for e in events))

    def test_gives_up_after_max_attempts(self):
        """Test an event that keeps failing is parked as dead"""
        self.send_email.side_effect = RuntimeError("smtp down")
        with mock.patch.object(settings, "OUTBOX_MAX_ATTEMPTS", 2):
            booking_service.create_booking(self.db, self.user_a.id, self.schedule.id, [1])
            outbox_service.process_pending(self.db)
            self.assertEqual(outbox_service.process_pending(self.db)["processed"], 0)
        status = outbox_service.outbox_status(self.db)
        self.assertEqual(status["dead"], 2)
        self.assertEqual(status["failed"], 0)
        self.assertEqual(status["sent"], 3)

    def test_booking_without_email_is_skipped(self):
        """Test a booker without an e-mail address does not fail the event"""
        user = self.make_user("nomail@example.com", "No Mail")
        user.email = ""
        self.db.commit()
        booking_service.create_booking(self.db, user.id, self.schedule.id, [2])
        recipients = [c.args[0] for c in self.send_email.call_args_list]
        self.assertEqual(recipients, ["ops@triply.test"])
        self.assertEqual(outbox_service.outbox_status(self.db)["failed"], 0)

    def test_worker_job_uses_its_own_session(self):
        """Test the Celery job body drains the outbox with a fresh session"""
        self.send_email.side_effect = RuntimeError("smtp down")
        booking_service.create_booking(self.db, self.user_a.id, self.schedule.id, [1])
        self.send_email.side_effect = None
        with mock.patch.object(worker_jobs, "SessionLocal", self.Session):
            result = worker_jobs.process_outbox(limit=10)
        self.assertEqual(result["sent"], 2)
        self.db.expire_all()
        self.assertEqual(self.db.query(OutboxEvent).filter_by(status="failed").count(), 0)

    def test_worker_sync_manifests(self):
        """Test the manifest sync job body"""
        booking_service.create_booking(self.db, self.user_a.id, self.schedule.id, [1])
        with mock.patch.object(worker_jobs, "SessionLocal", self.Session):
            result = worker_jobs.sync_manifests()
        self.assertEqual(result, {"schedules": 1, "created": 0, "updated": 1, "failed": 0})

    def test_worker_running_during_booking_does_not_resend(self):
        """Test an event claimed by the booking request is not delivered again by the worker"""
        recipients = []
        worker_runs = []

        def deliver(to_email, subject, body):
            recipients.append(to_email)
            if worker_runs:
                return
            worker_runs.append(to_email)
            # the beat task fires while the request is still delivering its first event
            worker_db = self.Session()
            try:
                outbox_service.process_pending(worker_db, grace_seconds=0)
            finally:
                worker_db.close()

        self.send_email.side_effect = deliver
        b = booking_service.create_booking(self.db, self.user_a.id, self.schedule.id, [1])

        self.assertEqual(sorted(recipients), ["alice@example.com", "ops@triply.test"])
        self.assertEqual(self.publish.call_count, 3)
        self.db.expire_all()
        events = outbox_service.list_events(self.db, booking_ref=b.booking_ref)
        self.assertEqual(len(events), 5)
        self.assertTrue(all(e.status == "sent" and e.attempts == 1 for e in events))

    def test_fresh_queued_events_are_left_to_the_request(self):
        """Test the worker skips queued events younger than the grace period"""
        outbox_service.enqueue(self.db, outbox_service.MANIFEST_REGENERATE, {"schedule_id": self.schedule.id})
        self.db.commit()
        self.assertEqual(outbox_service.process_pending(self.db)["processed"], 0)
        result = outbox_service.process_pending(self.db, grace_seconds=0)
        self.assertEqual(result, {"sent": 1, "failed": 0, "processed": 1})

    def test_sending_event_is_reclaimed_only_when_stale(self):
        """Test an event stuck in sending is retried after the claim timeout"""
        self.send_email.side_effect = RuntimeError("smtp down")
        booking_service.create_booking(self.db, self.user_a.id, self.schedule.id, [1])
        self.send_email.side_effect = None
        stuck = self.db.query(OutboxEvent).filter_by(kind=outbox_service.EMAIL_OPERATOR_NOTICE).one()
        stuck.status = "sending"
        stuck.claimed_at = datetime.now(timezone.utc)
        self.db.commit()

        self.assertEqual(outbox_service.process_pending(self.db)["processed"], 1)
        self.assertEqual(outbox_service.outbox_status(self.db)["sending"], 1)
        self.assertEqual(outbox_service.dispatch(self.db, [stuck.id]), {"sent": 0, "failed": 0})

        stuck.claimed_at = datetime.now(timezone.utc) - timedelta(seconds=settings.OUTBOX_CLAIM_TIMEOUT_SECONDS + 60)
        self.db.commit()
        self.assertEqual(outbox_service.process_pending(self.db), {"sent": 1, "failed": 0, "processed": 1})
        self.db.refresh(stuck)
        self.assertEqual(stuck.status, "sent")
