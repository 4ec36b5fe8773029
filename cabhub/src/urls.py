"""
API Endpoint URL Constants

This module defines the URL paths used throughout the application
for accessing the resources of the booking platform.

The paths are relative to the mount point of the sub application
(`/company` or `/vendor`) that serves them.
"""

# -------------------------------
# Authentication & Tokens
# -------------------------------
URL_ACCOUNT_TOKEN = "/account/token"

# -------------------------------
# Tenants
# -------------------------------
URL_VENDOR = "/vendor"
URL_VENDOR_PROFILE = "/profile"
URL_ASSOCIATION = "/association"

# -------------------------------
# Fleet
# -------------------------------
URL_DRIVER = "/driver"
URL_VEHICLE = "/vehicle"

# -------------------------------
# Booking
# -------------------------------
URL_BOOKING = "/booking"
URL_BOOKING_ACCEPT = "/booking/accept"
URL_BOOKING_REJECT = "/booking/reject"
URL_BOOKING_ASSIGN = "/booking/assign"
URL_BOOKING_START = "/booking/start"
URL_BOOKING_END = "/booking/end"
URL_BOOKING_CANCEL = "/booking/cancel"
URL_BOOKING_OPEN = "/booking/open"
URL_BOOKING_REVIEW = "/booking/review"
URL_BOOKING_HISTORY = "/booking/history"
URL_BOOKING_FEED = "/booking/feed"

# -------------------------------
# Health
# -------------------------------
URL_HEALTH = "/health"
