"""
Voicemail Bridge

Verifies signed telephony webhooks, drives a greet-and-record call script and
forwards finished recordings to an AMQP queue.
"""

__version__ = "0.1.0"

from voicemail_bridge.config import Config, ConfigurationError

__all__ = ["Config", "ConfigurationError"]
