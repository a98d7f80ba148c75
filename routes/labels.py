"""
Label job routes (JSON API).

Handles:
- POST /api/labels/jobs                  - Submit a label job
- GET  /api/labels/jobs/<job_id>         - Poll a job's status stream and result
- POST /api/labels/jobs/<job_id>/reprint - Print a failed job's confirmed labels again

Submission body:
    {
      "store_id": "...",
      "items": [{"product_id": "...", "quantity": 2, "tier_label": "3.5g"}],
      "sale_context": {"order_id": "...", "sold_at": "2025-01-05T18:00:00Z", ...},
      "store_logo_url": "...",          optional
      "destination_id": "socket://...", optional, overrides printer settings
      "weight_tier": "3.5g",            optional
      "preview": false                  optional
    }

Manual inventory labels use "mode": "manual" with "product_ids" (one
entry per label) and optional "tier_labels"; order reprints use
"mode": "orders" with "orders". Both build the cart and sale context
server-side.
"""

from typing import Any, Dict, List, Optional

import bleach
from flask import Blueprint, current_app, request

from models.label import PrintCartItem, SaleContext
from models.print_job import LabelJobRequest
from services.job_service import JobNotReprintableError
from services.label_requests import (
    build_manual_cart_items,
    build_order_cart_items,
    manual_sale_context,
    order_sale_context,
)
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

labels_bp = Blueprint("labels", __name__, url_prefix="/api/labels")


def sanitize_text(value: Any, max_length: int = 200) -> Optional[str]:
    """
    Sanitize a free-text field from a request body.

    Strips all HTML tags, trims whitespace, and caps the length.
    Returns None for empty input.
    """
    if value is None:
        return None
    text = bleach.clean(str(value), tags=[], strip=True).strip()
    return text[:max_length] or None


def _clean_url(value: Any, max_length: int = 2048) -> Optional[str]:
    """URLs and printer handles are not free text: trimmed, never HTML-escaped."""
    if value is None:
        return None
    text = str(value).strip()
    return text[:max_length] or None


def _sanitize_sale_context(data: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = dict(data)
    for key in ("location_name", "order_type"):
        if key in cleaned:
            cleaned[key] = sanitize_text(cleaned[key])
    return cleaned


def _object_list(value: Any, name: str) -> List[Dict[str, Any]]:
    """A list of JSON objects (missing means empty); anything else is malformed."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(entry, dict) for entry in value):
        raise ValueError(f"{name} must be a list of objects")
    return value


def _bad_request(message: str):
    logger.warning(f"Rejected label job request: {message}")
    return {"error": "Bad Request", "message": message}, 400


def parse_job_request(body: Dict[str, Any]) -> LabelJobRequest:
    """
    Build a LabelJobRequest from a JSON body.

    Raises:
        ValueError, KeyError, TypeError: malformed body
    """
    store_id = sanitize_text(body.get("store_id"))
    if not store_id:
        raise ValueError("store_id is required")

    mode = body.get("mode", "cart")
    location_id = sanitize_text(body.get("location_id"))
    location_name = sanitize_text(body.get("location_name"))

    if mode == "manual":
        items = build_manual_cart_items(
            [str(p) for p in body.get("product_ids") or []],
            [sanitize_text(t, 32) for t in body.get("tier_labels") or []],
        )
        sale_context = manual_sale_context(
            location_id=location_id,
            location_name=location_name,
            staff_id=sanitize_text(body.get("staff_id")),
        )
    elif mode == "orders":
        orders = _object_list(body.get("orders"), "orders")
        for order in orders:
            _object_list(order.get("items"), "order items")
        items = build_order_cart_items(orders)
        sale_context = order_sale_context(
            orders, location_id=location_id, location_name=location_name
        )
    elif mode == "cart":
        context_data = body.get("sale_context")
        if not isinstance(context_data, dict):
            raise ValueError("sale_context is required")
        sale_context = SaleContext.from_dict(_sanitize_sale_context(context_data))
        items = [PrintCartItem.from_dict(item) for item in _object_list(body.get("items"), "items")]
    else:
        raise ValueError(f"Unknown mode '{mode}'")

    return LabelJobRequest(
        store_id=store_id,
        items=tuple(items),
        sale_context=sale_context,
        store_logo_url=_clean_url(body.get("store_logo_url")),
        destination_id=_clean_url(body.get("destination_id"), 512),
        weight_tier=sanitize_text(body.get("weight_tier"), 32),
        preview=bool(body.get("preview", False)),
    )


@labels_bp.route("/jobs", methods=["POST"])
def submit_job():
    """
    Submit a label job.

    Returns 202 with the job id; the job runs in its own thread.
    An empty cart is accepted and ends with a "no items" result.
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _bad_request("Request body must be a JSON object")

    try:
        job_request = parse_job_request(body)
    except (ValueError, KeyError, TypeError) as e:
        return _bad_request(str(e))

    job_service = current_app.config["JOB_SERVICE"]
    job_id = job_service.submit(job_request)

    return {
        "job_id": job_id,
        "job_name": job_request.job_name,
        "total_units": job_request.total_units,
    }, 202


@labels_bp.route("/jobs/<job_id>", methods=["GET"])
def get_job(job_id: str):
    """
    Poll a job.

    Reads from the JobResultStore populated by job threads.
    """
    job_service = current_app.config["JOB_SERVICE"]
    record = job_service.get_job(job_id)
    if record is None:
        return {"error": "Not Found", "message": f"Unknown job {job_id}"}, 404

    data = record.to_dict()
    data["pending"] = job_service.is_job_pending(job_id)
    return data


@labels_bp.route("/jobs/<job_id>/reprint", methods=["POST"])
def reprint_job(job_id: str):
    """
    Print a failed job's confirmed labels again.

    Uses the codes registered by the original run; no new codes are
    registered. Only jobs whose printing failed or was cancelled qualify.
    """
    body = request.get_json(silent=True) or {}
    destination_id = _clean_url(body.get("destination_id"), 512) if isinstance(body, dict) else None

    job_service = current_app.config["JOB_SERVICE"]
    try:
        job_service.reprint(job_id, destination_id)
    except KeyError:
        return {"error": "Not Found", "message": f"Unknown job {job_id}"}, 404
    except JobNotReprintableError as e:
        return {"error": "Conflict", "message": str(e)}, 409

    return {"job_id": job_id, "reprinting": True}, 202
