from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class SaveSvcError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        return self.user_message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": dict(self.context or {}),
        }


# ---- Startup (fatal) ----
class ConfigError(SaveSvcError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class RegistryUnavailableError(SaveSvcError):
    def __init__(self, user_message: str = "Cannot open variable server", **ctx: Any):
        super().__init__("registry_unavailable", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class TriggerNotFoundError(SaveSvcError):
    def __init__(self, user_message: str = "Cannot find trigger variable", **ctx: Any):
        super().__init__("trigger_not_found", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class NotifyRegistrationError(SaveSvcError):
    def __init__(self, user_message: str = "notification request failed", **ctx: Any):
        super().__init__("notify_refused", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


# ---- Per cycle / per record ----
class PersistIOError(SaveSvcError):
    def __init__(self, user_message: str = "Failed to create configuration file", **ctx: Any):
        super().__init__("persist_io_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class ConversionError(SaveSvcError):
    def __init__(self, user_message: str = "Cannot convert variable to text", **ctx: Any):
        super().__init__("conversion_error", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class StateTransitionError(SaveSvcError):
    def __init__(self, user_message: str = "Internal state error.", **ctx: Any):
        super().__init__("state_transition_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)
