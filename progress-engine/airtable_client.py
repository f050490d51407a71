# progress-engine/airtable_client.py
import logging
import os

import httpx
import requests
from dotenv import load_dotenv

import config
from exceptions import ConcurrentModificationError

load_dotenv()

logger = logging.getLogger(__name__)

API_KEY = os.getenv("AIRTABLE_API_KEY")
BASE_ID = os.getenv("AIRTABLE_BASE_ID")
TABLE_NAME = os.getenv("AIRTABLE_TABLE_NAME", "Customers")
API_HOST = "https://api.airtable.com/v0"

CUSTOMER_ID_FIELD = config.AIRTABLE_FIELDS["customer_id"]
VERSION_FIELD = config.AIRTABLE_FIELDS["state_version"]


def _table_url() -> str:
    return f"{API_HOST}/{BASE_ID}/{TABLE_NAME}"

def _headers() -> dict:
    return {"Authorization": f"Bearer {API_KEY}", "Content-Type": "application/json"}

def _customer_formula(customer_id: str) -> str:
    escaped = str(customer_id).replace("'", "\\'")
    return f"{{{CUSTOMER_ID_FIELD}}} = '{escaped}'"

def record_version(record: dict | None) -> int:
    if not record:
        return 0
    try:
        return int(record.get("fields", {}).get(VERSION_FIELD) or 0)
    except (TypeError, ValueError):
        return 0


# --- Synchronous Functions ---

def _handle_request_exception(e: requests.exceptions.RequestException, context: str):
    error_message = f"Error during '{context}': {e}"
    if e.response is not None:
        error_message += f" | Status: {e.response.status_code} | Response: {e.response.text}"
    logger.error(error_message)
    return None

def get_customer_record(customer_id: str):
    """Returns the customer's record, or None when there is none. Request errors are logged and re-raised."""
    params = {"filterByFormula": _customer_formula(customer_id), "maxRecords": 1}
    try:
        response = requests.get(_table_url(), headers=_headers(), params=params, timeout=30)
        response.raise_for_status()
        records = response.json().get("records", [])
        return records[0] if records else None
    except requests.exceptions.RequestException as e:
        _handle_request_exception(e, f"get customer {customer_id}")
        raise

def get_record(record_id: str):
    try:
        response = requests.get(f"{_table_url()}/{record_id}", headers=_headers(), timeout=30)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        _handle_request_exception(e, f"get record {record_id}")
        raise

def save_customer_record(record_id: str, fields: dict, expected_version: int, customer_id: str | None = None):
    """PATCHes a customer record if nobody else wrote it since it was read.

    The stored "State Version" must still equal `expected_version`; the write
    bumps it by one. Raises ConcurrentModificationError on a mismatch and lets
    HTTP errors propagate.
    """
    actual_version = record_version(get_record(record_id))
    if actual_version != expected_version:
        raise ConcurrentModificationError(customer_id or record_id, expected_version, actual_version)

    payload = {"fields": {**fields, VERSION_FIELD: expected_version + 1}}
    response = requests.patch(f"{_table_url()}/{record_id}", headers=_headers(), json=payload, timeout=30)
    response.raise_for_status()
    logger.info("Saved customer record %s at version %s", record_id, expected_version + 1)
    return response.json()

def create_customer_record(customer_id: str, fields: dict):
    payload = {"fields": {CUSTOMER_ID_FIELD: customer_id, **fields, VERSION_FIELD: 1}}
    response = requests.post(_table_url(), headers=_headers(), json=payload, timeout=30)
    response.raise_for_status()
    logger.info("Created customer record for %s", customer_id)
    return response.json()

def get_record_versions(record_ids: list[str]) -> dict:
    """Current "State Version" of each record id, in one request. Request errors propagate."""
    formula = "OR(" + ",".join(f"RECORD_ID() = '{record_id}'" for record_id in record_ids) + ")"
    params = {"filterByFormula": formula, "fields[]": [VERSION_FIELD], "pageSize": 100}
    response = requests.get(_table_url(), headers=_headers(), params=params, timeout=30)
    response.raise_for_status()
    return {record["id"]: record_version(record) for record in response.json().get("records", [])}

def batch_update_customer_records(updates: list[dict], expected_versions: dict | None = None) -> list[dict]:
    """Updates [{"id": ..., "fields": {...}}] in chunks of AIRTABLE_BATCH_SIZE.

    With `expected_versions` ({record_id: version}) each chunk's versions are
    re-read first. Records that moved on since they were read are skipped and
    the rest are written at version + 1.
    """
    updated = []
    size = config.AIRTABLE_BATCH_SIZE
    for start in range(0, len(updates), size):
        chunk = updates[start:start + size]
        if expected_versions is not None:
            current = get_record_versions([u["id"] for u in chunk])
            fresh = []
            for update in chunk:
                expected = expected_versions.get(update["id"], 0)
                if current.get(update["id"]) != expected:
                    logger.warning("Skipping record %s: version %s is no longer %s",
                                   update["id"], current.get(update["id"]), expected)
                    continue
                fresh.append({"id": update["id"], "fields": {**update["fields"], VERSION_FIELD: expected + 1}})
            chunk = fresh
            if not chunk:
                continue
        response = requests.patch(_table_url(), headers=_headers(), json={"records": chunk}, timeout=60)
        response.raise_for_status()
        updated.extend(response.json().get("records", []))
    return updated

def list_customer_records(fields: list | None = None) -> list[dict]:
    params = {"pageSize": 100}
    if fields:
        params["fields[]"] = fields
    all_records = []
    while True:
        try:
            response = requests.get(_table_url(), headers=_headers(), params=params, timeout=60)
            response.raise_for_status()
            body = response.json()
            all_records.extend(body.get("records", []))
            offset = body.get("offset")
            if not offset:
                break
            params["offset"] = offset
        except requests.exceptions.RequestException as e:
            _handle_request_exception(e, "list customer records")
            return []
    return all_records

def health_check() -> dict:
    """Checks connectivity and that the gamification fields exist on the table."""
    if not API_KEY or not BASE_ID:
        return {"status": "unconfigured", "missing_fields": []}
    try:
        response = requests.get(_table_url(), headers=_headers(), params={"maxRecords": 1}, timeout=10)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        _handle_request_exception(e, "health check")
        return {"status": "unreachable", "missing_fields": []}

    records = response.json().get("records", [])
    if not records:
        return {"status": "ok", "missing_fields": []}
    # Airtable omits empty fields, so this is only a hint on a sparse record.
    present = records[0].get("fields", {})
    missing = [f for f in config.GAMIFICATION_FIELDS if f not in present]
    return {"status": "degraded" if missing else "ok", "missing_fields": missing}


# --- Asynchronous Functions ---

def _handle_async_request_exception(e: httpx.HTTPError, context: str):
    error_message = f"Error during async '{context}': {e}"
    if getattr(e, "response", None) is not None:
        error_message += f" | Status: {e.response.status_code} | Response: {e.response.text}"
    logger.error(error_message)
    return None

async def get_customer_record_async(customer_id: str):
    params = {"filterByFormula": _customer_formula(customer_id), "maxRecords": 1}
    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.get(_table_url(), headers=_headers(), params=params)
            response.raise_for_status()
            records = response.json().get("records", [])
            return records[0] if records else None
    except httpx.HTTPError as e:
        _handle_async_request_exception(e, f"get customer {customer_id}")
        raise
