"""
Event type constants for SystemEvent and ProcessedUpdate.

Use these instead of string literals to ensure consistency.
"""

# ---- State machine ----
EVENT_ATOMIC_UPDATE_CONFLICT = "atomic_update.conflict"
EVENT_LATE_STATUS_OVERWRITE = "state_machine.late_status_overwrite"

# ---- Telegram inbound ----
EVENT_TELEGRAM_MESSAGE = "message"
EVENT_TELEGRAM_CALLBACK_QUERY = "callback_query"
EVENT_TELEGRAM_SECRET_VERIFICATION_FAILURE = "telegram.secret_verification_failure"
EVENT_TELEGRAM_WEBHOOK_FAILURE = "telegram.webhook_failure"

# ---- Delivery ----
EVENT_DELIVERY_FAILURE = "delivery.failure"
EVENT_DELIVERY_RATE_LIMITED = "delivery.rate_limited"
EVENT_DELIVERY_RETRY_BUDGET_EXHAUSTED = "delivery.retry_budget_exhausted"
EVENT_DELIVERY_SWEEP_FAILURE = "delivery.sweep_failure"
