"""Configuration models and YAML loading for PigeonNS.

Brief:
  Typed pydantic models for the resolver and the HTTP gateway, plus a small
  loader for the optional YAML config file used by the CLI.

Inputs:
  - YAML config files and keyword overrides

Outputs:
  - ResolverConfig / ServerConfig instances and raw config dicts
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, validator


class ResolverConfig(BaseModel):
    """Brief: Typed configuration model for MdnsResolver.

    Inputs:
      - timeout_ms: int milliseconds to wait for an answer before a query
        times out (default 5000).
      - ttl: int default cache lifetime in seconds, used when an answer carries
        no positive TTL (default 120).
      - cache_size: int maximum number of cached addresses (default 1000).
      - domain: str suffix that marks mDNS names (default `.local`).
      - interface: Optional IPv4 address of the interface used to join the
        multicast group. None lets the OS choose.
      - port: int mDNS UDP port (default 5353).

    Outputs:
      - ResolverConfig instance.
    """

    timeout_ms: int = Field(default=5000, ge=1)
    ttl: int = Field(default=120, ge=1)
    cache_size: int = Field(default=1000, ge=1)
    domain: str = Field(default=".local")
    interface: Optional[str] = Field(default=None)
    port: int = Field(default=5353, ge=0, le=65535)

    @validator("domain", pre=True)
    def _normalize_domain(cls, v):  # type: ignore[no-untyped-def]
        """Brief: Normalize the mDNS domain suffix.

        Inputs:
          - v: Domain string (e.g. `.local`, `local`, `.Local.`).

        Outputs:
          - str: Lowercase domain with a leading dot and no trailing dot.

        Example:
          - `local` -> `.local`
          - `.local.` -> `.local`
        """

        s = str(v or ".local").strip().lower().rstrip(".")
        if not s:
            s = ".local"
        if not s.startswith("."):
            s = "." + s
        return s

    @validator("interface", pre=True)
    def _normalize_interface(cls, v):  # type: ignore[no-untyped-def]
        if v is None:
            return None
        s = str(v).strip()
        if not s or s.lower() in {"default", "any", "0.0.0.0"}:
            return None
        return s

    class Config:
        extra = "forbid"


class ServerConfig(BaseModel):
    """Brief: Listen address and CORS switch for the HTTP gateway."""

    host: str = Field(default="localhost")
    port: int = Field(default=5380, ge=0, le=65535)
    cors: bool = True

    class Config:
        extra = "forbid"


def load_config(path: Optional[str]) -> Dict[str, Any]:
    """Brief: Read an optional YAML config file.

    Inputs:
      - path: Filesystem path, or None/empty for "no file".

    Outputs:
      - dict with optional `resolver`, `server` and `logging` mappings.

    Raises:
      - ValueError when the document, or one of its known sections, is not a
        mapping.
      - OSError when the file cannot be read.

    Example:
      >>> load_config(None)
      {}
    """

    if not path:
        return {}
    with open(os.path.expanduser(path), "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"config file {path} must contain a mapping")
    for section in ("resolver", "server", "logging"):
        value = cfg.get(section)
        if value is not None and not isinstance(value, dict):
            raise ValueError(f"config.{section} must be a mapping when present")
    return cfg


def build_resolver_config(
    cfg: Optional[Dict[str, Any]] = None, **overrides: Any
) -> ResolverConfig:
    """Brief: Merge the `resolver` section of cfg with non-None overrides.

    Inputs:
      - cfg: Parsed config dict (from load_config) or None.
      - overrides: Field values from the command line; None means "not given".

    Outputs:
      - ResolverConfig

    Example:
      >>> build_resolver_config({"resolver": {"ttl": 60}}, timeout_ms=250).timeout_ms
      250
    """

    merged: Dict[str, Any] = dict((cfg or {}).get("resolver") or {})
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return ResolverConfig(**merged)


def build_server_config(
    cfg: Optional[Dict[str, Any]] = None, **overrides: Any
) -> ServerConfig:
    """Same merge rules as build_resolver_config, for the `server` section."""

    merged: Dict[str, Any] = dict((cfg or {}).get("server") or {})
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return ServerConfig(**merged)
