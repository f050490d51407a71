# progress-engine/alert_client.py
import logging
import os

import requests
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

WEBHOOK_URL_TOOL_UNLOCK = os.getenv("WEBHOOK_URL_TOOL_UNLOCK")
WEBHOOK_URL_MILESTONE = os.getenv("WEBHOOK_URL_MILESTONE")


def _post(url: str, payload: dict, label: str) -> bool:
    try:
        response = requests.post(url, json=payload, timeout=5)
        response.raise_for_status()
        return True
    except requests.exceptions.RequestException as e:
        logger.error("Failed to trigger '%s' webhook: %s", label, e)
        return False


def trigger_unlock_alert(customer_id: str, unlock) -> bool:
    if not WEBHOOK_URL_TOOL_UNLOCK:
        logger.info("WEBHOOK_URL_TOOL_UNLOCK is not set. Skipping.")
        return False

    payload = {
        "customer_id": customer_id,
        "tool_id": unlock.tool_id,
        "competency_achieved": unlock.competency_achieved,
        "level": unlock.level,
        "timestamp": unlock.timestamp.isoformat() if unlock.timestamp else None,
    }
    sent = _post(WEBHOOK_URL_TOOL_UNLOCK, payload, "Tool Unlock")
    if sent:
        logger.info("Triggered 'Tool Unlock' alert for %s on %s.", customer_id, unlock.tool_id)
    return sent


def trigger_milestone_alert(customer_id: str, reward) -> bool:
    if not WEBHOOK_URL_MILESTONE:
        logger.info("WEBHOOK_URL_MILESTONE is not set. Skipping.")
        return False

    payload = {
        "customer_id": customer_id,
        "milestone_id": reward.milestone_id,
        "name": reward.name,
        "badge": reward.badge,
        "reward_points": reward.reward_points,
    }
    sent = _post(WEBHOOK_URL_MILESTONE, payload, "Milestone")
    if sent:
        logger.info("Triggered 'Milestone' alert for %s: %s.", customer_id, reward.milestone_id)
    return sent
