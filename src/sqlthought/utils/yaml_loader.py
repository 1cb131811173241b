"""
Utility for loading the packaged prompt resources written in YAML.

Currently this is the error taxonomy the correction stage classifies
failures against. The file ships inside the package, so every entry point
(HTTP server, demo runner, tests) sees the same canonical taxonomy.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml

from ..domain.errors import ConfigurationError
from ..utils.logging import get_module_logger


logger = get_module_logger()

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"
ERROR_TAXONOMY_FILE = "error_taxonomy.yaml"


def load_yaml_resource(file_name: str) -> Dict[str, Any]:
    """
    Load a YAML file from the packaged prompts directory.

    Args:
        file_name: File name inside the prompts directory

    Returns:
        Parsed YAML content as dictionary

    Raises:
        ConfigurationError: If the file is missing, unparseable, or not a mapping
    """
    path = PROMPTS_DIR / file_name

    try:
        with path.open("r", encoding="utf-8") as handle:
            content = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load YAML resource: {e}", file_name=file_name)
        raise ConfigurationError(
            f"Failed to load prompt resource '{file_name}': {e}",
            details={"path": str(path)},
        ) from e

    if not isinstance(content, dict):
        raise ConfigurationError(
            f"Prompt resource '{file_name}' must contain a mapping",
            details={"path": str(path)},
        )

    logger.info("YAML resource loaded", file_name=file_name)
    return content


def parse_taxonomy(yaml_content: Dict[str, Any]) -> Dict[str, str]:
    """
    Flatten the taxonomy into category id -> description.

    Args:
        yaml_content: Parsed YAML dictionary with structure:
            {
                "schema_link": {"col_missing": "description", ...},
                "syntax": {"any": "description"}
            }

    Returns:
        {"schema_link.col_missing": "description", "syntax.*": "description"}
    """
    categories: Dict[str, str] = {}

    for group, entries in yaml_content.items():
        if not isinstance(entries, dict):
            continue
        for name, description in entries.items():
            category = f"{group}.*" if name == "any" else f"{group}.{name}"
            categories[category] = str(description)

    return categories


@lru_cache
def load_error_taxonomy() -> Dict[str, str]:
    """Canonical error taxonomy, loaded once per process."""
    return parse_taxonomy(load_yaml_resource(ERROR_TAXONOMY_FILE))


def taxonomy_categories() -> List[str]:
    return list(load_error_taxonomy())
