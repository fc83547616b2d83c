"""Map id to display name lookup table."""

import json
import logging
from pathlib import Path

_logger = logging.getLogger(__name__)


def load_map_names(path: Path | str | None) -> dict[str, str]:
    """Load the map-name table; a missing or unreadable file yields ``{}``."""
    if path is None:
        _logger.info("No map names table configured, using id-only names")
        return {}
    table_path = Path(path)
    if not table_path.exists():
        _logger.info("Map names table not found, using id-only names: %s", table_path)
        return {}
    try:
        data = json.loads(table_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        _logger.warning("Failed to load map names table: %s", table_path)
        return {}
    if not isinstance(data, dict):
        _logger.warning("Map names table is not an object: %s", table_path)
        return {}
    table = {str(key): str(value) for key, value in data.items()}
    _logger.info("Loaded map names table (%s entries)", len(table))
    return table
