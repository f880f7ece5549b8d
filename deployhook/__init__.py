"""Webhook-triggered deploys driven by flat routing tables."""

__version__ = "0.1.0"
