"""
Shared Kernel

Base classes and utilities shared across the booking, payments and
notification contexts: domain events, the message bus and the unit of work.
"""
