"""
API Endpoint URL Constants

This module defines the URL paths used throughout the application.
Admin console paths are relative to the `/admin` application.
"""

# -------------------------------
# Health
# -------------------------------
URL_HEALTH = "/health"

# -------------------------------
# Account & Tokens
# -------------------------------
URL_ACCOUNT = "/account"
URL_ACCOUNT_TOKEN = "/account/token"

# -------------------------------
# Bus catalog
# -------------------------------
URL_BUS = "/buses"
URL_BUS_SEARCH = "/buses/search"
URL_BUS_DETAIL = "/buses/{bus_id}"

# -------------------------------
# Bookings
# -------------------------------
URL_BOOKING = "/bookings"
URL_BOOKING_DETAIL = "/bookings/{booking_id}"
URL_BOOKING_STATUS = "/bookings/{booking_id}/status"
URL_BOOKED_SEATS = "/bookings/bus/{bus_id}/date/{travel_date}"

# -------------------------------
# Admin console
# -------------------------------
URL_AGENT = "/agents"
URL_ACCOUNTS = "/accounts"
