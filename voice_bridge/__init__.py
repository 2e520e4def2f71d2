"""
Voice Cloud Bridge

Telephony voice webhook service: verifies the sender, routes the caller's
intent to a text-generation backend under a per-request budget, synthesizes
the answer and replies with voice markup.
"""

__version__ = "1.0.0"
