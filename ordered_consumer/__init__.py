"""
Ordered Consumer

A Pub/Sub consumer that serializes processing per ordering key with a
Redis-backed distributed lock, across redeliveries and consumer instances.
"""

__version__ = "1.0.0"
