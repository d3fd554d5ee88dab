"""
Call lifecycle and analysis orchestration core.

Places outbound calls through a telephony provider, polls them to a
terminal outcome, reconciles that outcome into durable call records and
submits recordings to an external analysis processor.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
