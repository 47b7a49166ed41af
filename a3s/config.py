from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .aws import BackendMode

DEVELOPMENT_ENV = "development"


@dataclass(frozen=True)
class Settings:
    backend: BackendMode = BackendMode.AUTOMATIC
    profile: Optional[str] = None
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    debug: bool = False


def _env_value(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = env.get(name, "").strip()
        if value:
            return value
    return None


def load_settings(
    args: Optional[argparse.Namespace] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Merge command-line flags over environment variables.

    Raises ``ConfigurationError`` for an unknown backend, so a bad value is
    reported before the UI starts.
    """
    env = os.environ if environ is None else environ
    backend_flag = getattr(args, "backend", None) if args is not None else None
    profile_flag = getattr(args, "profile", None) if args is not None else None

    if backend_flag:
        backend = BackendMode.parse(backend_flag)
    else:
        backend = BackendMode.from_env(env)

    return Settings(
        backend=backend,
        profile=(profile_flag or "").strip() or _env_value(env, "AWS_PROFILE"),
        region=_env_value(env, "AWS_REGION", "AWS_DEFAULT_REGION"),
        endpoint_url=_env_value(env, "AWS_ENDPOINT_URL"),
        access_key_id=_env_value(env, "AWS_ACCESS_KEY_ID"),
        secret_access_key=_env_value(env, "AWS_SECRET_ACCESS_KEY"),
        debug=(env.get("A3S_ENV", "").strip().lower() == DEVELOPMENT_ENV),
    )
