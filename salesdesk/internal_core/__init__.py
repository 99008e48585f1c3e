from .config import ServiceConfig, load_config
from .event_log import EventLog, InvalidDayError, validate_day

__all__ = ["ServiceConfig", "load_config", "EventLog", "InvalidDayError", "validate_day"]
