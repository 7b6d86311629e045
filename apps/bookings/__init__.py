"""Bookings app package.

This app encapsulates the booking lifecycle: the booking model and its
append-only event log, the status state machine, command handlers for
every transition and the handlers that enqueue side effects after a
transition commits.
"""
