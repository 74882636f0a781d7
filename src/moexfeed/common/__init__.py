"""Shared configuration, logging and metrics for moexfeed."""
