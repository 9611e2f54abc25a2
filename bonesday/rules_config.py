"""
Configurable keyword lists for vibe classification.
Allows keywords to be loaded from a JSON file without code changes.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

# Default keyword sets, keyed by the rule name used in config files.
# Matching is plain substring containment on lower-cased text.
DEFAULT_VIBE_KEYWORDS: Dict[str, List[str]] = {
    "skipped": [
        "no reading today",
        "no reading",
        "no bones reading",
        "taking the day off",
        "day off from bones",
    ],
    "no_bones": [
        "no bones",
        "no-bones",
        "nobones",
        "zero bones",
    ],
    "bones": [
        "bones day",
        "has bones",
        "bones today",
        "#bonesday",
    ],
}

RULE_NAMES = tuple(DEFAULT_VIBE_KEYWORDS.keys())


def load_rules_from_file(file_path: str) -> Optional[Dict[str, Any]]:
    """Load rules from a JSON file. Returns None if file doesn't exist or is invalid."""
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not read rules file {file_path}: {e}")
        return None


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    return Path(__file__).parent.parent / "config"


def load_vibe_keywords() -> Dict[str, List[str]]:
    """Load keyword lists from config file, falling back to defaults per rule."""
    config = load_rules_from_file(str(get_config_dir() / "vibe_rules.json"))
    keywords = {name: list(words) for name, words in DEFAULT_VIBE_KEYWORDS.items()}
    if not isinstance(config, dict):
        return keywords

    for key, value in config.items():
        if key not in RULE_NAMES:
            logger.warning(f"Unknown vibe rule '{key}' in config, ignoring")
            continue
        if isinstance(value, list) and value and all(isinstance(item, str) and item.strip() for item in value):
            keywords[key] = [item.strip().lower() for item in value]
        else:
            logger.warning(f"Invalid vibe rule for '{key}', using default")

    return keywords


def create_example_config() -> Path:
    """Write an example configuration file for reference."""
    config_dir = get_config_dir()
    config_dir.mkdir(exist_ok=True)
    path = config_dir / "vibe_rules_example.json"

    with open(path, 'w', encoding='utf-8') as f:
        json.dump(DEFAULT_VIBE_KEYWORDS, f, indent=2)

    logger.info(f"Created example config file {path}; rename it to vibe_rules.json to use it")
    return path
