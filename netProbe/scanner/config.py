"""Configuration loader for the resolver scan."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional, Tuple

import dns.exception
import dns.name
import dns.rdatatype
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from netProbe.scanner.addresses import AddressRange, InvalidRangeError


class ConfigError(ValueError):
    """Configuration is missing, unreadable or invalid."""


def _check_domain(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("domain must not be empty")
    try:
        dns.name.from_text(value)
    except dns.exception.DNSException as exc:
        raise ValueError(f"invalid domain {value!r}: {exc}") from exc
    return value


def parse_domain_list(raw: Any) -> Tuple[str, ...]:
    """Split a comma-separated list (or a YAML sequence) into an ordered tuple."""
    if raw is None:
        return ()
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw]
    else:
        raise ValueError(f"domains must be a comma-separated string or a list, got {type(raw).__name__}")
    return tuple(_check_domain(item) for item in items if item.strip())


class ScanConfig(BaseModel):
    """Settings for one scan; built once and shared read-only by every work unit."""
    domain: str
    network: str
    domains: Tuple[str, ...] = Field(default=())
    timeout_seconds: float = Field(default=5.0, gt=0)
    concurrency: int = Field(default=256, ge=1)
    database: str = Field(default="dns.db", min_length=1)
    qtype: str = Field(default="A")
    transport: Literal["udp", "tcp"] = Field(default="udp")
    port: int = Field(default=53, ge=1, le=65535)
    log_failures: bool = Field(default=False)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("domain")
    @classmethod
    def _validate_domain(cls, value: str) -> str:
        return _check_domain(value)

    @field_validator("domains", mode="before")
    @classmethod
    def _split_domains(cls, value: Any) -> Tuple[str, ...]:
        return parse_domain_list(value)

    @field_validator("network")
    @classmethod
    def _validate_network(cls, value: str) -> str:
        try:
            return str(AddressRange.parse(value))
        except InvalidRangeError as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("qtype")
    @classmethod
    def _validate_qtype(cls, value: str) -> str:
        value = value.strip().upper()
        try:
            dns.rdatatype.from_text(value)
        except dns.exception.DNSException as exc:
            raise ValueError(f"unknown query type {value!r}") from exc
        return value

    @property
    def address_range(self) -> AddressRange:
        return AddressRange.parse(self.network)

    @property
    def all_domains(self) -> Tuple[str, ...]:
        """Primary domain first, then the additional ones in configured order."""
        return (self.domain,) + self.domains

    @staticmethod
    def read_yaml(path: str) -> Dict[str, Any]:
        cfg_path = Path(path)
        if not cfg_path.exists():
            raise ConfigError(f"Scan config not found: {cfg_path}")
        try:
            raw = yaml.safe_load(cfg_path.read_text()) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Unreadable scan config {cfg_path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"Scan config {cfg_path} must be a mapping")
        return raw

    @classmethod
    def load(cls, path: str) -> "ScanConfig":
        return cls.from_sources(path, {})

    @classmethod
    def from_sources(cls, path: Optional[str], overrides: Mapping[str, Any]) -> "ScanConfig":
        """Merge defaults, the optional YAML file, then non-None overrides."""
        raw: Dict[str, Any] = cls.read_yaml(path) if path else {}
        raw.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return cls(**raw)
        except ValidationError as exc:
            raise ConfigError(f"Invalid scan config: {exc}") from exc
