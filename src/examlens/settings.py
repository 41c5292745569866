# src/examlens/settings.py
from __future__ import annotations
import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import Provider, ProviderConfig
from .errors import ValidationError

logger = logging.getLogger(__name__)

_SETTINGS = "settings.json"

# Checked in order after EXAMLENS_API_KEY
_PROVIDER_KEY_ENV = {
    Provider.GEMINI: ("GOOGLE_AI_API_KEY", "GEMINI_API_KEY"),
    Provider.QWEN: ("DASHSCOPE_API_KEY",),
}


def settings_dir(env: Mapping[str, str] | None = None) -> Path:
    """
    Directory holding the persisted settings ($EXAMLENS_HOME or ~/.examlens).
    """
    env = os.environ if env is None else env
    home = env.get("EXAMLENS_HOME")
    return Path(home) if home else Path.home() / ".examlens"


def settings_path(env: Mapping[str, str] | None = None) -> Path:
    return settings_dir(env) / _SETTINGS


def load_settings(path: Path) -> Dict[str, Any] | None:
    """
    Load the raw settings dictionary, or None if nothing was saved yet.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


def save_settings(cfg: ProviderConfig, path: Optional[Path] = None) -> Path:
    """
    Persist a provider configuration. This is the only write path for settings.
    """
    path = path or settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(cfg.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8"
    )
    try:
        path.chmod(0o600)  # holds a credential
    except OSError:
        logger.debug("Could not restrict permissions on %s", path)
    return path


def _provider(value: Any, where: str) -> Provider:
    try:
        return Provider(str(value).lower())
    except ValueError as e:
        known = ", ".join(p.value for p in Provider)
        raise ValidationError(f"unknown provider {value!r} in {where} (expected one of: {known})") from e


def _chains(raw: Any, where: str) -> Dict[str, Tuple[str, ...]]:
    """
    Per-task overrides: a list of model ids, or a bare string for a one-model chain.
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError(f"'chains' in {where} must be an object of task -> models")
    chains: Dict[str, Tuple[str, ...]] = {}
    for task, models in raw.items():
        if isinstance(models, str):
            models = [models]
        if not isinstance(models, (list, tuple)) or not all(isinstance(m, str) for m in models):
            raise ValidationError(f"chain for {task!r} in {where} must be a list of model ids")
        if models:
            chains[str(task)] = tuple(models)
    return chains


def _from_dict(d: Mapping[str, Any], where: str = "settings") -> ProviderConfig:
    kwargs: Dict[str, Any] = {
        "provider": _provider(d.get("provider", Provider.GEMINI.value), where),
        "credential": d.get("credential") or None,
        "base_url": d.get("base_url") or None,
        "timeout": d.get("timeout"),
        "chains": _chains(d.get("chains"), where),
    }
    for key in ("temperature", "max_tokens"):
        if d.get(key) is not None:
            kwargs[key] = d[key]
    return ProviderConfig(**kwargs)


def resolve_config(
    path: Optional[Path] = None, env: Mapping[str, str] | None = None
) -> ProviderConfig:
    """
    Build the active ProviderConfig: saved settings first, then environment overrides.
    Raises ValidationError for an unknown provider or malformed chain overrides.
      - EXAMLENS_PROVIDER overrides the provider
      - EXAMLENS_API_KEY overrides the credential
      - otherwise a provider-specific key (GOOGLE_AI_API_KEY, GEMINI_API_KEY, DASHSCOPE_API_KEY)
        fills in a missing credential
    """
    env = os.environ if env is None else env
    path = path or settings_path(env)
    cfg = _from_dict(load_settings(path) or {}, str(path))

    override = env.get("EXAMLENS_PROVIDER")
    provider = _provider(override, "EXAMLENS_PROVIDER") if override else cfg.provider
    if provider != cfg.provider:
        # The saved credential belongs to the other provider
        cfg = replace(
            cfg,
            provider=provider,
            credential=None,
            base_url=None,
            chains={},
        )

    credential = env.get("EXAMLENS_API_KEY") or cfg.credential
    if not credential:
        for name in _PROVIDER_KEY_ENV[cfg.provider]:
            if env.get(name):
                credential = env[name]
                break

    return replace(cfg, credential=credential or None)
