"""
Application Constants

This module contains the magic strings and numbers used throughout the engine.
Runtime-tunable values (grace periods, rewards, caps) live in app.core.config.
"""

# ============================================================================
# Pricing Constants (VND)
# ============================================================================

CURRENCY = "VND"

# Fixed platform fee per person per date
PLATFORM_FEE_PER_PERSON = 100_000

# VIP discount on the platform fee (50% off)
VIP_PLATFORM_FEE_DISCOUNT = 0.5

# Default restaurant commission rate
DEFAULT_RESTAURANT_COMMISSION_RATE = 0.15

# ============================================================================
# Date Order Constants
# ============================================================================

DEFAULT_MAX_APPLICANTS = 10
MAX_APPLICATION_MESSAGE_LENGTH = 500
MAX_ORDER_DESCRIPTION_LENGTH = 1000
MAX_REVIEW_COMMENT_LENGTH = 1000
MIN_REVIEW_RATING = 1
MAX_REVIEW_RATING = 5

# ============================================================================
# Notification Types
# ============================================================================

NOTIFY_APPLICATION_RECEIVED = "date_application"
NOTIFY_APPLICATION_ACCEPTED = "date_matched"
NOTIFY_APPLICATION_REJECTED = "date_application_rejected"
NOTIFY_ORDER_CANCELLED = "date_cancelled"
NOTIFY_ORDER_EXPIRED = "date_expired"
NOTIFY_ORDER_COMPLETED = "date_completed"
NOTIFY_REVIEW_REQUEST = "review_request"
NOTIFY_NO_SHOW = "date_no_show"
NOTIFY_CONNECTION = "connection"
NOTIFY_SYSTEM = "system"

# ============================================================================
# Scheduler Constants
# ============================================================================

SETTLEMENT_JOB_ID = "settlement_sweep_job"
SETTLEMENT_RETRY_JOB_ID = "settlement_sweep_retry"

# Retry settings for failed sweeps
SCHEDULER_MAX_RETRIES = 3
SCHEDULER_RETRY_DELAY_BASE_MINUTES = 1  # Exponential backoff: 1, 2, 4 minutes

# ============================================================================
# Database Constants
# ============================================================================

# Pagination
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
