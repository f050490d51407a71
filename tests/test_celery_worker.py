"""
Tests for the worker tasks with the customer store mocked out.
"""
import json
from unittest.mock import patch

import pytest
import requests
from sqlalchemy.exc import SQLAlchemyError

import celery_worker
import customer_state
from evaluation import reevaluate_snapshot
from exceptions import ConcurrentModificationError
from factories import icp
from models import LedgerEventType, PointsLedger, ProcessedEvent
from schemas import CustomerSnapshot

PAYLOAD = {"eventId": "evt-1", "toolId": "icp", "timestamp": "2024-03-04T09:00:00Z", "metrics": {"score": 75}}


@pytest.fixture
def store():
    state = celery_worker.customer_state
    with patch.object(state, "load_customer_state", return_value=CustomerSnapshot(customer_id="cust-1")) as load, \
         patch.object(state, "save_customer_state", return_value=1) as save:
        yield load, save


class TestProcessActionEvent:

    def test_processes_and_records_ledger(self, db_session, store):
        _, save = store
        result = celery_worker.process_action_event("cust-1", PAYLOAD)

        assert result["status"] == "processed"
        assert result["points"] == 44
        assert result["milestones"] == ["customer_intelligence_foundation"]
        assert save.call_args.args[2] == 0

        entries = {e.event_type: e.points for e in db_session.query(PointsLedger).all()}
        assert entries == {LedgerEventType.TOOL_COMPLETION: 44, LedgerEventType.MILESTONE_REWARD: 50}
        processed = db_session.query(ProcessedEvent).one()
        assert (processed.event_key, processed.state_version) == ("evt-1", 1)

    def test_duplicate_delivery_is_detected(self, db_session, store):
        _, save = store
        first = celery_worker.process_action_event("cust-1", PAYLOAD)
        second = celery_worker.process_action_event("cust-1", PAYLOAD)
        assert first["status"] == "processed"
        assert second["status"] == "duplicate"
        assert save.call_count == 1

    def test_invalid_payload_is_rejected(self, db_session, store):
        load, _ = store
        result = celery_worker.process_action_event("cust-1", {"toolId": "crm_sync", "timestamp": "2024-03-04T09:00:00Z"})
        assert result["status"] == "invalid"
        load.assert_not_called()

    def test_concurrent_modification_is_retried(self, db_session, store):
        _, save = store
        save.side_effect = ConcurrentModificationError("cust-1", 0, 1)
        # Called outside a worker, retry re-raises the original error.
        with pytest.raises(ConcurrentModificationError):
            celery_worker.process_action_event("cust-1", PAYLOAD)
        assert db_session.query(PointsLedger).count() == 0
        assert db_session.query(ProcessedEvent).count() == 0

    def test_store_outage_is_retried_without_claiming_the_event(self, db_session, store):
        load, save = store
        load.side_effect = requests.exceptions.ConnectionError("store down")
        with pytest.raises(requests.exceptions.ConnectionError):
            celery_worker.process_action_event("cust-1", PAYLOAD)
        save.assert_not_called()
        assert db_session.query(ProcessedEvent).count() == 0

    def test_event_stays_claimed_when_ledger_write_fails_after_save(self, db_session, store):
        _, save = store
        with patch.object(celery_worker, "record_ledger", side_effect=SQLAlchemyError("disk full")):
            failed = celery_worker.process_action_event("cust-1", PAYLOAD)
        assert failed["status"] == "Error during processing."

        redelivered = celery_worker.process_action_event("cust-1", PAYLOAD)
        assert redelivered["status"] == "duplicate"
        assert save.call_count == 1
        assert db_session.query(ProcessedEvent).count() == 1

    def test_unlock_triggers_alert(self, db_session, store):
        load, _ = store
        load.return_value = CustomerSnapshot(customer_id="cust-1", history=[icp(80, days=-2), icp(90, days=-1)])
        with patch.object(celery_worker.alert_client, "trigger_unlock_alert") as unlock_alert, \
             patch.object(celery_worker.alert_client, "trigger_milestone_alert") as milestone_alert:
            result = celery_worker.process_action_event("cust-1", PAYLOAD)

        assert result["unlocks"] == ["cost_calculator"]
        unlock_alert.assert_called_once()
        assert unlock_alert.call_args.args[1].tool_id == "cost_calculator"
        assert milestone_alert.call_count == 1

    def test_event_key_without_id(self):
        event = icp(75)
        assert celery_worker.event_key_for(event) == "icp:2024-03-04T09:00:00+00:00"


class TestReevaluateCustomers:

    def test_updates_changed_records_only(self):
        current, _ = reevaluate_snapshot(CustomerSnapshot(customer_id="cust-3"))
        up_to_date = {"id": "rec3", "fields": {"Customer ID": "cust-3", "State Version": 5,
                                               **customer_state.snapshot_to_fields(current)}}
        history = json.dumps([
            {"toolId": "icp", "timestamp": f"2024-03-0{d}T09:00:00Z", "metrics": {"score": 80}} for d in (1, 2, 3)
        ])
        stale = {"id": "rec1", "fields": {"Customer ID": "cust-1", "Action History": history, "State Version": 2}}
        empty = {"id": "rec2", "fields": {"Customer ID": "cust-2", "State Version": 1,
                                          "Competency Progress": json.dumps({"total_progress_points": 0})}}
        client = celery_worker.airtable_client
        with patch.object(client, "list_customer_records", return_value=[stale, empty, up_to_date]), \
             patch.object(client, "batch_update_customer_records",
                          return_value=[{"id": "rec1"}, {"id": "rec2"}]) as batch, \
             patch.object(celery_worker.alert_client, "trigger_unlock_alert") as unlock_alert:
            result = celery_worker.reevaluate_customers()

        updates = batch.call_args.args[0]
        assert [u["id"] for u in updates] == ["rec1", "rec2"]
        assert "State Version" not in updates[0]["fields"]
        assert batch.call_args.kwargs["expected_versions"] == {"rec1": 2, "rec2": 1}
        assert unlock_alert.call_count == 1
        assert "Updated 2 of 3" in result["status"]

    def test_records_that_moved_get_no_unlock_alert(self):
        history = json.dumps([
            {"toolId": "icp", "timestamp": f"2024-03-0{d}T09:00:00Z", "metrics": {"score": 80}} for d in (1, 2, 3)
        ])
        stale = {"id": "rec1", "fields": {"Customer ID": "cust-1", "Action History": history, "State Version": 2}}
        client = celery_worker.airtable_client
        with patch.object(client, "list_customer_records", return_value=[stale]), \
             patch.object(client, "batch_update_customer_records", return_value=[]), \
             patch.object(celery_worker.alert_client, "trigger_unlock_alert") as unlock_alert:
            result = celery_worker.reevaluate_customers()
        unlock_alert.assert_not_called()
        assert "Updated 0 of 1" in result["status"]

    def test_no_records(self):
        with patch.object(celery_worker.airtable_client, "list_customer_records", return_value=[]):
            assert celery_worker.reevaluate_customers()["status"] == "No customer records found."


class TestRedisUrl:

    def test_azure_connection_string(self):
        url = celery_worker.parse_azure_redis_url("redis-prod.cache.windows.net:6380,password=abc123,ssl=True")
        assert url == "rediss://:abc123@redis-prod.cache.windows.net:6380?ssl_cert_reqs=CERT_NONE"

    def test_plain_url_is_unchanged(self):
        assert celery_worker.parse_azure_redis_url("redis://localhost:6379/0") == "redis://localhost:6379/0"
        assert celery_worker.parse_azure_redis_url(None) is None
