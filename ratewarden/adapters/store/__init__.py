"""Expiring key-value store adapters.

The limiter only needs get/set/delete with a TTL. Both bundled backends also
record hits atomically, which removes the lost-update race between
concurrent callers sharing a key.
"""
