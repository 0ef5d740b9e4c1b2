PENDING = "pending"
PAID = "paid"
FAILED = "failed"
CANCELLED = "cancelled"
EXPIRED = "expired"

ALLOWED_TRANSITIONS = {
    PENDING: [PAID, FAILED, CANCELLED, EXPIRED],
    PAID: [],
    FAILED: [],
    CANCELLED: [],
    EXPIRED: [],
}


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, [])
