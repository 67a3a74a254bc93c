from __future__ import annotations

import importlib
from typing import Callable

from savesvc.core.config.models import ServiceConfig
from savesvc.core.errors import RegistryUnavailableError
from savesvc.core.varserver.interface import VarServer


def resolve_factory(target: str) -> Callable[[ServiceConfig], VarServer]:
    mod_name, _, attr = str(target).partition(":")
    try:
        mod = importlib.import_module(mod_name)
        fn = getattr(mod, attr)
    except (ImportError, AttributeError) as e:
        raise RegistryUnavailableError(f"Cannot load registry factory {target}: {e}", factory=target) from e
    if not callable(fn):
        raise RegistryUnavailableError(f"Registry factory {target} is not callable", factory=target)
    return fn


def open_varserver(cfg: ServiceConfig) -> VarServer:
    """Open a connection to the variable registry named by cfg.registry_factory."""
    fn = resolve_factory(cfg.registry_factory)
    try:
        server = fn(cfg)
    except (OSError, ValueError, KeyError) as e:
        raise RegistryUnavailableError(f"Cannot open variable server: {e}", factory=cfg.registry_factory) from e
    if server is None:
        raise RegistryUnavailableError("Cannot open variable server", factory=cfg.registry_factory)
    return server
