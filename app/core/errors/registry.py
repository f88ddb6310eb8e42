"""
Error registry: loads and validates registry.yaml.

Each entry is parsed into a frozen pydantic model. Structural problems
(bad code format, domain mismatch, duplicates, missing fields) are reported
as RegistryValidationError naming the offending entry.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from app.core.errors import CODE_PATTERN

logger = logging.getLogger(__name__)

VALID_DOMAINS = {"SRC", "ORD", "API", "SYS"}
VALID_SEVERITIES = {"DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"}
REQUIRED_FIELDS = {"code", "domain", "title", "severity", "retryable", "user_action_required", "http_status", "safe_message", "remediation"}

DEFAULT_PATH = os.path.join(os.path.dirname(__file__), "registry.yaml")


class RegistryValidationError(Exception):
    """Raised when registry.yaml has structural errors."""


class ErrorEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    code: str
    domain: str
    title: str
    severity: Literal["DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"]
    retryable: bool
    user_action_required: bool
    http_status: int = Field(ge=400, le=599)
    safe_message: str
    remediation: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    @field_validator("code")
    @classmethod
    def _code_format(cls, value: str) -> str:
        if not CODE_PATTERN.match(value):
            raise ValueError(f"Invalid code format: {value!r}")
        return value

    @field_validator("domain")
    @classmethod
    def _known_domain(cls, value: str) -> str:
        if value not in VALID_DOMAINS:
            raise ValueError(f"unknown domain {value!r}")
        return value

    @model_validator(mode="after")
    def _domain_matches_code(self):
        prefix = self.code.split("-")[1]
        if prefix != self.domain:
            raise ValueError(f"{self.code}: domain {self.domain!r} doesn't match code prefix {prefix!r}")
        return self


def _first_message(exc: ValidationError) -> str:
    err = exc.errors()[0]
    return str(err.get("ctx", {}).get("error") or err["msg"])


class ErrorRegistry:
    """Code -> ErrorEntry lookup backed by registry.yaml."""

    def __init__(self) -> None:
        self._entries: Dict[str, ErrorEntry] = {}
        self.schema_version: int = 0

    def load(self, path: Optional[str] = None) -> None:
        with open(path or DEFAULT_PATH, "r") as f:
            data = yaml.safe_load(f) or {}

        raw_entries = data.get("errors", [])
        if not isinstance(raw_entries, list):
            raise RegistryValidationError("'errors' must be a list")

        entries: Dict[str, ErrorEntry] = {}
        for idx, raw in enumerate(raw_entries):
            label = f"Entry {idx} ({raw.get('code', '?')})"
            missing = REQUIRED_FIELDS - set(raw)
            if missing:
                raise RegistryValidationError(f"{label}: missing fields {sorted(missing)}")
            try:
                entry = ErrorEntry.model_validate(raw)
            except ValidationError as exc:
                raise RegistryValidationError(f"{label}: {_first_message(exc)}") from exc
            if entry.code in entries:
                raise RegistryValidationError(f"Duplicate code: {entry.code}")
            entries[entry.code] = entry

        self._entries = entries
        self.schema_version = data.get("schema_version", 0)
        logger.info("error_registry_loaded", extra={"count": len(entries), "schema_version": self.schema_version})

    def get(self, code: str) -> Optional[ErrorEntry]:
        return self._entries.get(code)

    def all_codes(self) -> List[str]:
        return sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


error_registry = ErrorRegistry()
