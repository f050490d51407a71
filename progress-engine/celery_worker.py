# progress-engine/celery_worker.py
import logging
import os
import re
import requests
from celery import Celery
from dotenv import load_dotenv
from sqlalchemy.exc import IntegrityError
from database import SessionLocal
from models import LedgerEventType, PointsLedger, ProcessedEvent
from evaluation import evaluate_action, reevaluate_snapshot
from exceptions import ConcurrentModificationError, InvalidActionEventError
from repair import sanitize_event_payload
import airtable_client
import alert_client
import config
import customer_state

load_dotenv()

logger = logging.getLogger(__name__)

def parse_azure_redis_url(azure_url: str) -> str:
    if not azure_url or not azure_url.startswith('redis-'): return azure_url
    try:
        host, params = azure_url.split(',', 1)
        password_match = re.search(r'password=([^,]+)', params)
        password = password_match.group(1) if password_match else ''
        return f"rediss://:{password}@{host}?ssl_cert_reqs=CERT_NONE"
    except (ValueError, AttributeError):
        logger.warning("Could not parse Azure Redis URL, falling back to original value.")
        return azure_url

raw_redis_url = os.getenv("REDIS_URL")
parsed_redis_url = parse_azure_redis_url(raw_redis_url)
celery_app = Celery("tasks", broker=parsed_redis_url, backend=parsed_redis_url)


def event_key_for(event) -> str:
    """Identifies a delivery; redelivered webhooks carry the same id or the same tool/timestamp pair."""
    if event.event_id:
        return event.event_id
    return f"{event.tool_id}:{event.timestamp.isoformat()}"


def record_ledger(db_session, customer_id: str, outcome, event):
    award = outcome.award
    db_session.add(PointsLedger(
        customer_id=customer_id, event_type=LedgerEventType.TOOL_COMPLETION, tool_id=event.tool_id,
        points=award.points, notes=f"Completed {event.tool_id}: {award.breakdown}",
    ))
    if outcome.streak_bonus_points:
        db_session.add(PointsLedger(
            customer_id=customer_id, event_type=LedgerEventType.STREAK_BONUS, tool_id=event.tool_id,
            points=outcome.streak_bonus_points,
            notes=f"Streak bonus: {outcome.snapshot.competency.consistency_streak} days",
        ))
    for reward in outcome.milestones.rewards:
        db_session.add(PointsLedger(
            customer_id=customer_id, event_type=LedgerEventType.MILESTONE_REWARD, milestone_id=reward.milestone_id,
            points=reward.reward_points, notes=f"Milestone: {reward.name}",
        ))


def send_alerts(customer_id: str, outcome):
    for unlock in outcome.unlocks:
        alert_client.trigger_unlock_alert(customer_id, unlock)
    for reward in outcome.milestones.rewards:
        alert_client.trigger_milestone_alert(customer_id, reward)


def claim_event(db_session, customer_id: str, event_key: str, tool_id: str):
    """Commits the ProcessedEvent row up front. Returns None when the key is already taken."""
    if db_session.query(ProcessedEvent).filter_by(customer_id=customer_id, event_key=event_key).first():
        return None
    claim = ProcessedEvent(customer_id=customer_id, event_key=event_key, tool_id=tool_id)
    db_session.add(claim)
    try:
        db_session.commit()
    except IntegrityError:
        db_session.rollback()
        return None
    return claim


def release_event(db_session, claim):
    db_session.rollback()
    db_session.delete(claim)
    db_session.commit()


@celery_app.task(bind=True, max_retries=config.WORKER_CONFIG["max_concurrent_retries"])
def process_action_event(self, customer_id: str, payload: dict):
    logger.info("Received action event for customer %s", customer_id)
    try:
        event, report = sanitize_event_payload(payload)
    except InvalidActionEventError as e:
        logger.warning("Rejected action event for %s: %s", customer_id, e)
        return {"status": "invalid", "error": str(e)}
    if report.repaired:
        logger.warning("Repaired action event for %s: %s", customer_id, report.issues)

    event_key = event_key_for(event)
    db = SessionLocal()
    try:
        claim = claim_event(db, customer_id, event_key, event.tool_id)
        if claim is None:
            return {"status": "duplicate", "event_key": event_key}

        # The claim is released whenever the store write did not happen.
        try:
            snapshot = customer_state.load_customer_state(customer_id)
            outcome = evaluate_action(snapshot, event)
            new_version = customer_state.save_customer_state(customer_id, outcome.snapshot, snapshot.version)
        except Exception:
            release_event(db, claim)
            raise

        claim.state_version = new_version
        record_ledger(db, customer_id, outcome, event)
        db.commit()

        send_alerts(customer_id, outcome)
        return {
            "status": "processed",
            "points": outcome.award.points + outcome.streak_bonus_points,
            "unlocks": [u.tool_id for u in outcome.unlocks],
            "milestones": [m.milestone_id for m in outcome.milestones.achieved],
            "version": new_version,
        }

    except ConcurrentModificationError as e:
        db.rollback()
        logger.info("Retrying customer %s with fresh state: %s", customer_id, e)
        raise self.retry(exc=e, countdown=config.WORKER_CONFIG["retry_countdown_seconds"])
    except requests.exceptions.RequestException as e:
        db.rollback()
        logger.warning("Customer store unavailable for %s, retrying: %s", customer_id, e)
        raise self.retry(exc=e, countdown=config.WORKER_CONFIG["retry_countdown_seconds"])
    except Exception as e:
        db.rollback()
        logger.exception("An error occurred in process_action_event for customer %s: %s", customer_id, e)
        return {"status": "Error during processing."}
    finally:
        db.close()


@celery_app.task
def reevaluate_customers():
    """Re-derives level/rank and gate access for every stored customer.

    Records written by a worker after the listing are skipped; the next run
    picks them up.
    """
    logger.info("Running scheduled task: re-evaluating customers...")
    records = airtable_client.list_customer_records()
    if not records:
        return {"status": "No customer records found."}

    customer_field = config.AIRTABLE_FIELDS["customer_id"]
    updates = []
    versions = {}
    pending_unlocks = {}
    for record in records:
        customer_id = record.get("fields", {}).get(customer_field) or record["id"]
        snapshot = customer_state.snapshot_from_record(customer_id, record)
        refreshed, unlocks = reevaluate_snapshot(snapshot)
        if refreshed == snapshot and not snapshot.repairs.repaired:
            continue
        updates.append({"id": record["id"], "fields": customer_state.snapshot_to_fields(refreshed)})
        versions[record["id"]] = snapshot.version
        pending_unlocks[record["id"]] = (customer_id, unlocks)

    written = []
    if updates:
        written = airtable_client.batch_update_customer_records(updates, expected_versions=versions)
    for saved in written:
        customer_id, unlocks = pending_unlocks.get(saved.get("id"), (None, []))
        for unlock in unlocks:
            alert_client.trigger_unlock_alert(customer_id, unlock)
    return {"status": f"Re-evaluation complete. Updated {len(written)} of {len(records)} customers."}
