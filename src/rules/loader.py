import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from src.rules.models import Rules

_FENCED_YAML = re.compile(r"^\s*```ya?ml\s*$\n(.*?)^\s*```", re.MULTILINE | re.DOTALL)


def extract_yaml(text: str) -> str:
    """First ```yaml fenced block of a markdown document, else the text itself."""
    match = _FENCED_YAML.search(text)
    return match.group(1) if match else text


def load_rules(path: Path | str) -> Rules:
    """
    Load and validate the tracking rules file (plain YAML or markdown).
    Raises FileNotFoundError if the file is missing.
    Raises ValueError if the YAML or the schema is invalid.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Rules file not found at: {path}")

    try:
        data = yaml.safe_load(extract_yaml(path.read_text()))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML syntax in rules file: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise ValueError(f"Rules file must contain a mapping, got {type(data).__name__}")

    try:
        return Rules.model_validate(data or {})
    except ValidationError as e:
        raise ValueError(f"Rules validation failed:\n{e}") from e
