"""Catalog app package.

Service categories offered on the marketplace. Bookings and commission
settings reference a category; catalog management beyond that is not
part of this backend.
"""
