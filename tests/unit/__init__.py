"""Unit tests for moexfeed.

Unit tests are fast, isolated tests that don't require ISS or Kafka.
They test individual components in isolation.

Run: pytest tests/unit/ -v
"""
