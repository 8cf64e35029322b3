# backend/spa_engine/core/constants.py
"""Static values shared across the engine."""

BRAND_NAME = "Golden Hands Spa"

# Input length limits mirrored from the customer-facing forms
BOOKING_NOTES_MAX_LENGTH = 1000
ADMIN_NOTES_MAX_LENGTH = 2000
VOUCHER_RECIPIENT_NAME_MAX_LENGTH = 200
VOUCHER_TEMPLATE_NAME_MAX_LENGTH = 200

# Characters used for human-shareable voucher codes (no 0/O/1/I ambiguity)
VOUCHER_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

API_TITLE = f"{BRAND_NAME} Reservation API"
API_VERSION = "1.0.0"
API_DESCRIPTION = "Branch treatment bookings and gift vouchers"
