# paygate/x402/audit.py
"""
Audit logging for x402 payments.

This module records every payment decision the middleware makes, for:
- Dispute resolution
- Financial reconciliation
- Debugging failed settlements

Log format: JSON lines (one event per line)
Log location: X402Config.audit_log_path (X402_AUDIT_LOG_PATH); auditing is
off when no path is configured.

Events logged:
- 402 returned (resource, amount, network, pay_to)
- Payment received (payer, amount, network)
- Payment verified by the facilitator (valid, reason)
- Payment settled (transaction hash, network)
- Payment failed (stage, reason)
- Error (type, message, context)

Writing never raises: a broken audit log must not fail a paid request.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class AuditEventType(Enum):
    """Types of audit events that can be logged."""
    PAYMENT_REQUIRED_SENT = "payment_required_sent"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_VERIFIED = "payment_verified"
    PAYMENT_SETTLED = "payment_settled"
    PAYMENT_FAILED = "payment_failed"
    ERROR = "error"


def generate_request_id() -> str:
    """Generate a unique request ID for tracking."""
    return str(uuid.uuid4())[:8]


def ensure_audit_log_directory(log_path: PathLike) -> bool:
    """
    Ensure the audit log directory exists.

    Returns:
        True if directory exists or was created, False on error
    """
    try:
        log_dir = Path(log_path).parent
        if not log_dir.exists():
            log_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created audit log directory: {log_dir}")
        return True
    except OSError as e:
        logger.error(f"Failed to create audit log directory: {e}")
        return False


def create_audit_event(
    event_type: AuditEventType,
    data: Dict[str, Any],
    client_ip: Optional[str] = None,
    wallet_address: Optional[str] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """Create an audit event dictionary ready to be written to the log."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type.value,
        "request_id": request_id or generate_request_id(),
        "client_ip": client_ip,
        "wallet_address": wallet_address,
        "data": data
    }


def log_audit_event(
    log_path: Optional[PathLike],
    event_type: AuditEventType,
    data: Dict[str, Any],
    client_ip: Optional[str] = None,
    wallet_address: Optional[str] = None,
    request_id: Optional[str] = None
) -> Optional[str]:
    """
    Append an audit event to the log at ``log_path``.

    Returns:
        The request_id used for this event, or None if auditing is off or the
        write failed
    """
    if not log_path:
        return None

    event = create_audit_event(
        event_type=event_type,
        data=data,
        client_ip=client_ip,
        wallet_address=wallet_address,
        request_id=request_id
    )

    try:
        ensure_audit_log_directory(log_path)
        with open(log_path, "a") as f:
            f.write(json.dumps(event) + "\n")

        logger.debug(f"Audit event logged: {event_type.value} [{event['request_id']}]")
        return event["request_id"]

    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to write audit event: {e}")
        return None


# Convenience functions for specific event types

def log_payment_required_sent(
    log_path: Optional[PathLike],
    client_ip: str,
    resource: str,
    amount: str,
    network: str,
    pay_to: str,
    reason: Optional[str] = None,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a 402 Payment Required response event."""
    return log_audit_event(
        log_path,
        AuditEventType.PAYMENT_REQUIRED_SENT,
        data={
            "resource": resource,
            "max_amount_required": amount,
            "network": network,
            "pay_to": pay_to,
            "reason": reason,
        },
        client_ip=client_ip,
        request_id=request_id
    )


def log_payment_received(
    log_path: Optional[PathLike],
    client_ip: str,
    payer: str,
    amount: str,
    network: str,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a decoded payment payload."""
    return log_audit_event(
        log_path,
        AuditEventType.PAYMENT_RECEIVED,
        data={
            "amount": amount,
            "network": network,
        },
        client_ip=client_ip,
        wallet_address=payer,
        request_id=request_id
    )


def log_payment_verified(
    log_path: Optional[PathLike],
    client_ip: str,
    payer: Optional[str],
    is_valid: bool,
    invalid_reason: Optional[str] = None,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a facilitator verification result."""
    return log_audit_event(
        log_path,
        AuditEventType.PAYMENT_VERIFIED,
        data={
            "is_valid": is_valid,
            "invalid_reason": invalid_reason,
        },
        client_ip=client_ip,
        wallet_address=payer,
        request_id=request_id
    )


def log_payment_settled(
    log_path: Optional[PathLike],
    client_ip: str,
    payer: str,
    transaction_hash: Optional[str],
    network: str,
    amount_usd: str,
    resource: str,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a successful settlement."""
    return log_audit_event(
        log_path,
        AuditEventType.PAYMENT_SETTLED,
        data={
            "transaction_hash": transaction_hash,
            "network": network,
            "amount_usd": amount_usd,
            "resource": resource,
        },
        client_ip=client_ip,
        wallet_address=payer,
        request_id=request_id
    )


def log_payment_failed(
    log_path: Optional[PathLike],
    client_ip: str,
    reason: str,
    stage: str,
    code: Optional[str] = None,
    wallet_address: Optional[str] = None,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a rejected or unsettled payment."""
    return log_audit_event(
        log_path,
        AuditEventType.PAYMENT_FAILED,
        data={
            "reason": reason,
            "stage": stage,
            "code": code,
        },
        client_ip=client_ip,
        wallet_address=wallet_address,
        request_id=request_id
    )


def log_error(
    log_path: Optional[PathLike],
    client_ip: str,
    error_type: str,
    error_message: str,
    context: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log an unexpected error."""
    return log_audit_event(
        log_path,
        AuditEventType.ERROR,
        data={
            "error_type": error_type,
            "error_message": error_message,
            "context": context or {},
        },
        client_ip=client_ip,
        request_id=request_id
    )


def read_audit_log(
    log_path: PathLike,
    max_entries: int = 100,
    event_type: Optional[AuditEventType] = None,
    wallet_address: Optional[str] = None
) -> list:
    """
    Read entries from the audit log.

    Args:
        log_path: Audit log file
        max_entries: Maximum number of entries to return
        event_type: Filter by event type (optional)
        wallet_address: Filter by payer address, case-insensitive (optional)

    Returns:
        List of audit events (most recent first)
    """
    path = Path(log_path)
    if not path.exists():
        return []

    events = []
    try:
        with open(path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if event_type and event.get("event_type") != event_type.value:
                    continue
                if wallet_address and (event.get("wallet_address") or "").lower() != wallet_address.lower():
                    continue
                events.append(event)
    except OSError as e:
        logger.error(f"Failed to read audit log: {e}")
        return []

    return list(reversed(events))[:max_entries]


def get_audit_stats(log_path: PathLike) -> Dict[str, Any]:
    """
    Get statistics from the audit log.

    Returns:
        Dict with event counts and the first/last event timestamps
    """
    path = Path(log_path)
    if not path.exists():
        return {
            "total_events": 0,
            "events_by_type": {},
            "log_path": str(path),
            "log_exists": False,
        }

    events_by_type: Dict[str, int] = {}
    total = 0
    first_timestamp = None
    last_timestamp = None

    with open(path, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            total += 1
            event_type = event.get("event_type", "unknown")
            events_by_type[event_type] = events_by_type.get(event_type, 0) + 1

            timestamp = event.get("timestamp")
            if timestamp:
                if first_timestamp is None:
                    first_timestamp = timestamp
                last_timestamp = timestamp

    return {
        "total_events": total,
        "events_by_type": events_by_type,
        "first_event": first_timestamp,
        "last_event": last_timestamp,
        "log_path": str(path),
        "log_exists": True,
    }
