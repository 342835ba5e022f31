from .parsers import (
    ParseFailure,
    StatusMessage,
    TemperatureMessage,
    parse_status_message,
    parse_temperature_message,
)
from .receiver import MessageHandler, MQTTReceiver

__all__ = [
    "MQTTReceiver",
    "MessageHandler",
    "ParseFailure",
    "StatusMessage",
    "TemperatureMessage",
    "parse_status_message",
    "parse_temperature_message",
]
