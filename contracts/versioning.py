"""Schema and application version metadata for persisted transforms."""

from __future__ import annotations

SCHEMA_VERSION = "1.0.0"
APP_VERSION = "0.3.0"
