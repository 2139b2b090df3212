"""
fleetbook - availability and slot allocation for fleet service bookings.
"""

__version__ = "0.1.0"
