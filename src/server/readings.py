"""Reading endpoints."""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, request

from src.server.database import normalize_timestamp

logger = logging.getLogger(__name__)

bp = Blueprint("readings", __name__, url_prefix="/api/readings")

_NUMERIC_FIELDS = ("systolic", "diastolic", "pulse")


@bp.get("/<user_id>")
def list_readings(user_id: str):
    db = current_app.extensions["bp_buddy_db"]
    limit = request.args.get("limit", type=int)
    # Stored timestamps are normalized on write, so only the filters can fail here
    try:
        readings = db.get_readings(
            user_id,
            start_date=request.args.get("startDate"),
            end_date=request.args.get("endDate"),
            limit=limit,
        )
    except ValueError as e:
        return {"success": False, "error": f"Invalid date filter: {e}"}, 400
    return {"success": True, "data": readings}


@bp.post("")
def create_reading():
    db = current_app.extensions["bp_buddy_db"]
    body = request.get_json(silent=True) or {}
    user_id = body.get("userId")
    reading = body.get("reading") or {}

    if not user_id:
        return {"success": False, "error": "userId is required"}, 400
    if not reading.get("systolic") or not reading.get("diastolic"):
        return {"success": False, "error": "Systolic and diastolic values are required"}, 400

    try:
        values = {
            **reading,
            "systolic": int(reading["systolic"]),
            "diastolic": int(reading["diastolic"]),
            "pulse": int(reading["pulse"]) if reading.get("pulse") else None,
        }
    except (TypeError, ValueError):
        return {"success": False, "error": "Reading values must be numbers"}, 400

    if reading.get("timestamp") not in (None, ""):
        try:
            values["timestamp"] = normalize_timestamp(reading["timestamp"])
        except ValueError as e:
            return {"success": False, "error": f"Invalid timestamp: {e}"}, 400

    document = db.create_reading(user_id, values)
    logger.info(f"Stored reading {document['_id']} for {user_id}")
    return {"success": True, "data": document}, 201


@bp.put("/<reading_id>")
def update_reading(reading_id: str):
    db = current_app.extensions["bp_buddy_db"]
    body = request.get_json(silent=True) or {}

    updates = {}
    try:
        for field in _NUMERIC_FIELDS:
            if body.get(field) is not None:
                updates[field] = int(body[field])
    except (TypeError, ValueError):
        return {"success": False, "error": "Reading values must be numbers"}, 400
    if "notes" in body:
        updates["notes"] = body["notes"] or ""
    if "tags" in body:
        updates["tags"] = list(body["tags"] or [])

    if not updates:
        return {"success": False, "error": "No reading fields to update"}, 400

    document = db.update_reading(reading_id, updates)
    if document is None:
        return {"success": False, "error": "Reading not found"}, 404

    logger.info(f"Updated reading {reading_id}")
    return {"success": True, "data": document}


@bp.delete("/<reading_id>")
def delete_reading(reading_id: str):
    db = current_app.extensions["bp_buddy_db"]
    if not db.delete_reading(reading_id):
        return {"success": False, "error": "Reading not found"}, 404

    logger.info(f"Deleted reading {reading_id}")
    return {"success": True, "message": "Reading deleted successfully"}
