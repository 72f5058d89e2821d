"""
Submission status constants - centralized to avoid circular imports.
"""

# Dialogue statuses
STATUS_COLLECTING = "collecting"
STATUS_CONFIRMING = "confirming"

# Delivery statuses
STATUS_SENDING = "sending"  # Claimed by an inline send or a sweep run
STATUS_PENDING_SEND = "pending_send"  # Queued for the worker sweep
STATUS_SENT = "sent"
STATUS_FAILED = "failed"

# At most one submission per user may be in one of these
ACTIVE_STATUSES = (
    STATUS_COLLECTING,
    STATUS_CONFIRMING,
    STATUS_SENDING,
    STATUS_PENDING_SEND,
)

# Failure reason codes (stored in Submission.failure_reason)
REASON_CANCELLED_BY_USER = "cancelled_by_user"
REASON_RESTART_BY_USER = "restart_by_user"
REASON_DELIVERY_ERROR = "delivery_error"
REASON_RETRY_BUDGET_EXHAUSTED = "retry_budget_exhausted"

# Failed submissions with these reasons keep the one-tap retry affordance
RETRYABLE_FAILURE_REASONS = (
    REASON_DELIVERY_ERROR,
    REASON_RETRY_BUDGET_EXHAUSTED,
)

# Submission kinds
KIND_COMPETITION = "competition"
KIND_ACHIEVEMENT = "achievement"

SUBMISSION_KINDS = (KIND_COMPETITION, KIND_ACHIEVEMENT)
