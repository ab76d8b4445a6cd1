"""Configuration loader and validator.

A config file holds the tree settings of one championship, e.g.:

    has_preliminary: true
    preliminary_group_size: 4
    tree_type: direct_elimination
    fighting_areas: 2
    group_by: club
    random_seed: null
"""

from pathlib import Path
from typing import Any

import yaml

from kendotree.models import (
    DEFAULT_PRELIMINARY_GROUP_SIZE,
    ENTITY_FIELDS,
    VALID_FIGHTING_AREAS,
    VALID_PRELIMINARY_GROUP_SIZES,
    TournamentSettings,
    TreeType,
)


class ConfigError(Exception):
    """Configuration validation error."""

    pass


def load_config(path: str) -> dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        path: Path to YAML config file

    Returns:
        Dictionary with configuration values

    Raises:
        ConfigError: If file not found or invalid YAML
    """
    config_file = Path(path)

    if not config_file.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}")

    if config is None:
        raise ConfigError("Config file is empty")

    if not isinstance(config, dict):
        raise ConfigError("Config file must contain a mapping")

    return config


def parse_tree_type(value: Any) -> TreeType:
    """Accept 'round_robin' / 'direct_elimination' or the numeric values 0 / 1."""
    if isinstance(value, bool):
        raise ConfigError(f"tree_type must be a name or 0/1, got {value}")
    if isinstance(value, int):
        try:
            return TreeType(value)
        except ValueError:
            raise ConfigError(f"tree_type must be 0 or 1, got {value}")
    if isinstance(value, str):
        try:
            return TreeType[value.strip().upper()]
        except KeyError:
            pass
    names = ", ".join(t.label for t in TreeType)
    raise ConfigError(f"tree_type must be one of: {names}, got '{value}'")


def validate_config(config: dict[str, Any]) -> dict[str, Any]:
    """Validate configuration values.

    Args:
        config: Configuration dictionary

    Returns:
        Validated and normalized configuration

    Raises:
        ConfigError: If validation fails
    """
    validated = {}

    # Preliminary stage (optional, default False)
    validated["has_preliminary"] = config.get("has_preliminary", False)
    if not isinstance(validated["has_preliminary"], bool):
        raise ConfigError("has_preliminary must be true or false")

    # Preliminary group size (optional, must be 3, 4 or 5)
    group_size = config.get("preliminary_group_size", DEFAULT_PRELIMINARY_GROUP_SIZE)
    if group_size not in VALID_PRELIMINARY_GROUP_SIZES:
        raise ConfigError(f"preliminary_group_size must be 3, 4 or 5, got {group_size}")
    validated["preliminary_group_size"] = group_size

    # Tree type (optional, default round robin)
    validated["tree_type"] = parse_tree_type(config.get("tree_type", TreeType.ROUND_ROBIN.label))

    # Fighting areas (optional, must be 1, 2, 4 or 8)
    areas = config.get("fighting_areas", 1)
    if isinstance(areas, bool) or areas not in VALID_FIGHTING_AREAS:
        raise ConfigError(f"fighting_areas must be 1, 2, 4 or 8, got {areas}")
    validated["fighting_areas"] = areas

    # Entity to separate fighters by (optional, default none)
    group_by = config.get("group_by")
    if group_by is not None and group_by not in ENTITY_FIELDS:
        raise ConfigError(
            f"group_by must be one of {', '.join(ENTITY_FIELDS)} or null, got '{group_by}'"
        )
    validated["group_by"] = group_by

    # Random seed (optional, None means a different draw on every run)
    validated["random_seed"] = config.get("random_seed")
    if validated["random_seed"] is not None and (
        isinstance(validated["random_seed"], bool) or not isinstance(validated["random_seed"], int)
    ):
        raise ConfigError("random_seed must be an integer or null")

    return validated


def load_and_validate_config(path: str) -> dict[str, Any]:
    """Load and validate configuration in one step.

    Args:
        path: Path to YAML config file

    Returns:
        Validated configuration dictionary

    Raises:
        ConfigError: If loading or validation fails
    """
    config = load_config(path)
    return validate_config(config)


def settings_from_config(config: dict[str, Any]) -> TournamentSettings:
    """Build TournamentSettings from a validated configuration."""
    return TournamentSettings(
        has_preliminary=config["has_preliminary"],
        preliminary_group_size=config["preliminary_group_size"],
        tree_type=config["tree_type"],
        fighting_areas=config["fighting_areas"],
    )
