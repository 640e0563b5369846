"""Configuration validation using JSON Schema."""

from __future__ import annotations

import copy
from typing import Any, Dict

import jsonschema
from jsonschema import Draft7Validator, validators

from exceptions import ConfigValidationError
from log_config.logger import get_logger

logger = get_logger(__name__)

# JSON Schema for default.yaml configuration
CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["camera", "calibration"],
    "properties": {
        "camera": {
            "type": "object",
            "required": ["width", "height", "fps"],
            "properties": {
                "backend": {
                    "type": "string",
                    "enum": ["gstreamer", "opencv", "sim"],
                    "default": "gstreamer",
                },
                "width": {"type": "integer", "minimum": 160, "maximum": 7680},
                "height": {"type": "integer", "minimum": 120, "maximum": 4320},
                "fps": {"type": "integer", "minimum": 1, "maximum": 240},
                "first_sensor": {"type": "integer", "minimum": 0, "default": 0},
                "second_sensor": {"type": "integer", "minimum": 0, "default": 1},
                "read_timeout_ms": {"type": "integer", "minimum": 1, "maximum": 5000, "default": 200},
            },
        },
        "calibration": {
            "type": "object",
            "required": ["out"],
            "properties": {
                "out": {"type": "string", "minLength": 1},
                "match_mode": {"type": "integer", "enum": [0, 1, 2], "default": 0},
                "max_correspondences": {"type": "integer", "minimum": 4, "maximum": 100000, "default": 5000},
                "ratio_test": {"type": "number", "exclusiveMinimum": 0.0, "maximum": 1.0, "default": 0.75},
                "ransac_reproj_px": {"type": "number", "exclusiveMinimum": 0.0, "maximum": 50.0, "default": 3.0},
                "min_correspondences": {"type": "integer", "minimum": 4, "default": 12},
            },
        },
        "ui": {
            "type": "object",
            "default": {},
            "properties": {
                "window_width": {"type": "integer", "minimum": 160, "default": 1280},
                "window_height": {"type": "integer", "minimum": 120, "default": 720},
                "key_poll_ms": {"type": "integer", "minimum": 1, "maximum": 500, "default": 1},
                "show_quality_overlay": {"type": "boolean", "default": True},
            },
        },
    },
}


def extend_with_default(validator_class):
    """Extend JSON Schema validator to set default values."""
    validate_properties = validator_class.VALIDATORS["properties"]

    def set_defaults(validator, properties, instance, schema):
        if isinstance(instance, dict):
            for prop, subschema in properties.items():
                if "default" in subschema:
                    instance.setdefault(prop, copy.deepcopy(subschema["default"]))

        for error in validate_properties(validator, properties, instance, schema):
            yield error

    return validators.extend(validator_class, {"properties": set_defaults})


DefaultValidatingValidator = extend_with_default(Draft7Validator)


def validate_config(config: Dict[str, Any]) -> None:
    """Validate configuration against JSON Schema.

    Missing optional keys are filled in with their schema defaults.

    Args:
        config: Configuration dictionary

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    try:
        validator = DefaultValidatingValidator(CONFIG_SCHEMA)
        errors = list(validator.iter_errors(config))

        if errors:
            error_messages = []
            for error in errors:
                path = " -> ".join(str(p) for p in error.path) if error.path else "root"
                error_messages.append(f"{path}: {error.message}")

            logger.error(f"Configuration validation failed with {len(errors)} errors")
            for msg in error_messages:
                logger.error(f"  - {msg}")

            raise ConfigValidationError(
                f"Configuration validation failed with {len(errors)} error(s): " + "; ".join(error_messages),
                validation_errors=error_messages,
            )

        logger.debug("Configuration validation passed")

    except jsonschema.exceptions.SchemaError as e:
        logger.error(f"Invalid schema: {e}")
        raise ConfigValidationError(f"Invalid schema definition: {e}")


__all__ = ["validate_config", "CONFIG_SCHEMA"]
