from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import ValidationError

from savesvc.core.config.io import read_json_file
from savesvc.core.config.models import ServiceConfig
from savesvc.core.errors import ConfigError


def load_service_config(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> ServiceConfig:
    """
    Build the service config: defaults < JSON file at `path` < overrides.

    Overrides whose value is None are ignored so that unset CLI flags do not
    mask file values.
    """
    raw: Dict[str, Any] = {}
    if path:
        rr = read_json_file(path)
        if not rr.ok:
            raise ConfigError(f"Cannot read config file {path}: {rr.error}", path=path, error=rr.error)
        raw.update(rr.data)
    for k, v in (overrides or {}).items():
        if v is not None:
            raw[k] = v
    try:
        return ServiceConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid service config: {e.error_count()} error(s)", path=path, errors=[err.get("msg") for err in e.errors()]) from e
