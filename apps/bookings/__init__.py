"""Bookings app package.

The booking ledger and everything that writes to it: customer holds,
promotion of paid holds, ops bookings and the durable side-effect jobs
that follow a confirmation. Overlapping active bookings are rejected by a
database exclusion constraint, with per-machine locks in front of it.
"""
