"""Configuration loading for the BrAPI server."""

import json
import tomllib
from pathlib import Path

from brapi_mapper.config.models import BrapiSettings
from brapi_mapper.mapping.models import DatatypeMapping
from brapi_mapper.schema.models import BrapiDefinition


def _resolve(base_dir: Path, value: str | None) -> str | None:
    """Resolve a relative file path against the config directory."""
    if not value:
        return value
    path = Path(value)
    if not path.is_absolute():
        path = base_dir / path
    return str(path)


def load_brapi_config(config_path: Path | None = None) -> BrapiSettings:
    """Load BrAPI configuration from TOML file.

    Relative file paths (store fixtures, definitions, mappings) are
    resolved against the directory holding the config file.

    Args:
        config_path: Path to brapi.toml (default: brapi.toml in cwd)

    Returns:
        BrapiSettings with call settings and collaborator profiles

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / "brapi.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"BrAPI config not found: {config_path}\n"
            f"Create brapi.toml with your call settings and store profile."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    settings = BrapiSettings(**data)

    base_dir = config_path.resolve().parent
    settings.definitions = [_resolve(base_dir, p) for p in settings.definitions]
    settings.mappings = _resolve(base_dir, settings.mappings)
    settings.store.fixtures = _resolve(base_dir, settings.store.fixtures)

    return settings


def _read_json(path: Path) -> object:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e


def load_definitions(paths: list[str | Path]) -> list[BrapiDefinition]:
    """Load versioned BrAPI definition files.

    Each file holds one JSON object with ``version``, ``release``,
    ``data_types`` and ``calls``.

    Raises:
        FileNotFoundError: If a definition file doesn't exist
        ValueError: If a definition file is invalid
    """
    definitions: list[BrapiDefinition] = []
    for path in paths:
        data = _read_json(Path(path))
        definitions.append(BrapiDefinition(**data))
    return definitions


def load_mappings(path: str | Path | None) -> list[DatatypeMapping]:
    """Load datatype mappings from a JSON list.

    Returns an empty list when *path* is None.

    Raises:
        FileNotFoundError: If the mapping file doesn't exist
        ValueError: If the mapping file is invalid
    """
    if path is None:
        return []
    data = _read_json(Path(path))
    if not isinstance(data, list):
        raise ValueError(f"Mapping file must contain a JSON list: {path}")
    return [DatatypeMapping(**item) for item in data]
