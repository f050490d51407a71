# progress-engine/customer_state.py

"""
Boundary between the engine and the Airtable customer table.

Stored fields are JSON text. Reading always goes through the repair pass, so
a corrupted field degrades to defaults instead of failing the caller.
"""
import json
import logging

import airtable_client
import config
from repair import (
    log_report,
    repair_competency_state,
    repair_history,
    repair_milestone_progress,
    repair_tool_access,
)
from schemas import CustomerSnapshot, RepairReport

logger = logging.getLogger(__name__)

FIELDS = config.AIRTABLE_FIELDS


def snapshot_from_record(customer_id: str, record: dict | None) -> CustomerSnapshot:
    if not record:
        return CustomerSnapshot(customer_id=customer_id)
    fields = record.get("fields", {})

    history, history_report = repair_history(fields.get(FIELDS["action_history"]))
    competency, competency_report = repair_competency_state(fields.get(FIELDS["competency_progress"]))
    tool_access, access_report = repair_tool_access(fields.get(FIELDS["tool_access_status"]))
    milestones, milestone_report = repair_milestone_progress(fields.get(FIELDS["milestone_progress"]))

    report = RepairReport()
    for part in (history_report, competency_report, access_report, milestone_report):
        report = report.merge(part)
    if report.repaired:
        log_report(customer_id, report)

    return CustomerSnapshot(
        customer_id=customer_id,
        history=history,
        competency=competency,
        tool_access=tool_access,
        milestone_progress=milestones,
        version=airtable_client.record_version(record),
        repairs=report,
    )


def load_customer_state(customer_id: str) -> CustomerSnapshot:
    record = airtable_client.get_customer_record(customer_id)
    return snapshot_from_record(customer_id, record)


async def load_customer_state_async(customer_id: str) -> CustomerSnapshot:
    record = await airtable_client.get_customer_record_async(customer_id)
    return snapshot_from_record(customer_id, record)


def _dump_map(items: dict) -> str:
    return json.dumps({key: value.model_dump(mode="json") for key, value in items.items()})


def snapshot_to_fields(patch) -> dict:
    """Serializes a CustomerSnapshot, or a dict holding any of its parts, to Airtable fields."""
    if isinstance(patch, CustomerSnapshot):
        patch = {
            "history": patch.history,
            "competency": patch.competency,
            "tool_access": patch.tool_access,
            "milestone_progress": patch.milestone_progress,
        }
    fields = {}
    if "history" in patch:
        fields[FIELDS["action_history"]] = json.dumps([e.model_dump(mode="json") for e in patch["history"]])
    if "competency" in patch:
        fields[FIELDS["competency_progress"]] = patch["competency"].model_dump_json()
    if "tool_access" in patch:
        fields[FIELDS["tool_access_status"]] = _dump_map(patch["tool_access"])
    if "milestone_progress" in patch:
        fields[FIELDS["milestone_progress"]] = _dump_map(patch["milestone_progress"])
    return fields


def save_customer_state(customer_id: str, patch, expected_version: int) -> int:
    """Writes the patch and returns the new state version.

    Raises ConcurrentModificationError when the stored version moved on. Store
    read errors propagate, so an outage is never mistaken for a new customer.
    """
    fields = snapshot_to_fields(patch)
    record = airtable_client.get_customer_record(customer_id)
    if record is None:
        if expected_version != 0:
            raise LookupError(f"Customer record {customer_id} not found")
        created = airtable_client.create_customer_record(customer_id, fields)
        return airtable_client.record_version(created)

    saved = airtable_client.save_customer_record(record["id"], fields, expected_version, customer_id=customer_id)
    return airtable_client.record_version(saved)
