"""Notifications app package.

Booking emails (customer confirmation, internal confirmation and invoice
ready), each sent at most once per booking.
"""
