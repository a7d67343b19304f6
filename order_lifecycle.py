"""
Order lifecycle rules.

An order tracks four status axes (payment, order, return, refund). Each axis
has its own transition table; cross-axis guards are checked whenever one
axis moves. `transition()` returns the fields to $set, including any
follow-on changes on other axes, or raises InvalidTransition.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

PAYMENT = "payment_status"
ORDER = "order_status"
RETURN = "return_status"
REFUND = "refund_status"

TRANSITIONS = {
    PAYMENT: {
        "pending": {"completed", "failed"},
        "completed": set(),
        "failed": set(),
    },
    ORDER: {
        "processing": {"shipped", "cancelled"},
        "shipped": {"delivered", "cancelled"},
        "delivered": set(),
        "cancelled": set(),
    },
    RETURN: {
        "not_requested": {"requested"},
        "requested": {"approved", "rejected"},
        "approved": set(),
        "rejected": set(),
    },
    REFUND: {
        "not_initiated": {"initiated"},
        "initiated": {"completed", "failed"},
        "completed": set(),
        "failed": set(),
    },
}

INITIAL = {
    PAYMENT: "pending",
    ORDER: "processing",
    RETURN: "not_requested",
    REFUND: "not_initiated",
}


class InvalidTransition(ValueError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check_guards(order: dict, axis: str, target: str) -> None:
    payment = order.get(PAYMENT, INITIAL[PAYMENT])
    status = order.get(ORDER, INITIAL[ORDER])

    if axis == PAYMENT and status == "cancelled":
        raise InvalidTransition("Payment cannot change on a cancelled order")

    if axis == ORDER and target in ("shipped", "delivered"):
        if payment == "failed":
            raise InvalidTransition(f"Cannot mark order {target}: payment failed")
        if order.get("payment_method") != "COD" and payment != "completed":
            raise InvalidTransition(f"Cannot mark order {target}: payment not completed")

    if axis == RETURN and target == "requested" and status != "delivered":
        raise InvalidTransition("Returns can only be requested for delivered orders")

    if axis == REFUND and target == "initiated":
        if payment != "completed":
            raise InvalidTransition("Nothing to refund: payment not completed")
        if status != "cancelled" and order.get(RETURN) != "approved":
            raise InvalidTransition("Refund requires a cancelled order or an approved return")


def transition(order: dict, axis: str, target: str, at: Optional[datetime] = None) -> Dict[str, Any]:
    if axis not in TRANSITIONS:
        raise InvalidTransition(f"Unknown status field: {axis}")
    table = TRANSITIONS[axis]
    if target not in table:
        raise InvalidTransition(f"Unknown {axis.replace('_', ' ')}: {target}")
    current = order.get(axis, INITIAL[axis])
    if target not in table.get(current, set()):
        raise InvalidTransition(f"Cannot change {axis.replace('_', ' ')} from {current} to {target}")
    _check_guards(order, axis, target)

    at = at or _now()
    changes: Dict[str, Any] = {axis: target}
    if axis == PAYMENT and target == "completed":
        changes["payment_completed_at"] = at
    if axis == ORDER and target == "delivered":
        changes["delivered_at"] = at
        # delivering a cash-on-delivery order settles its payment
        if order.get("payment_method") == "COD" and order.get(PAYMENT) == "pending":
            changes[PAYMENT] = "completed"
            changes["payment_completed_at"] = at
    if axis == ORDER and target == "cancelled" and order.get(PAYMENT) == "completed" \
            and order.get(REFUND, INITIAL[REFUND]) == "not_initiated":
        changes[REFUND] = "initiated"
    return changes


def display_status(order: dict) -> str:
    """Single label reconciling the four axes, for listings."""
    refund = order.get(REFUND, INITIAL[REFUND])
    if refund != "not_initiated":
        return f"refund_{refund}"
    ret = order.get(RETURN, INITIAL[RETURN])
    if ret != "not_requested":
        return f"return_{ret}"
    status = order.get(ORDER, INITIAL[ORDER])
    if status == "cancelled":
        return "cancelled"
    payment = order.get(PAYMENT, INITIAL[PAYMENT])
    if payment == "failed":
        return "payment_failed"
    if status == "processing" and payment == "pending" and order.get("payment_method") != "COD":
        return "awaiting_payment"
    return status
