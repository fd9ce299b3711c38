"""Declaration I/O helpers (internal)."""

import json
from pathlib import Path
from typing import Any, Dict, Union

from pydantic import ValidationError

from repbuild.kernel.declaration import BuildDeclaration
from repbuild.kernel.errors import DeclarationError


DEFAULT_DECLARATION_NAME = "repbuild.json"


def load_declaration_from_dict(data: Dict[str, Any], origin: str = "<dict>") -> BuildDeclaration:
    """Validate a declaration mapping into a BuildDeclaration."""
    if not isinstance(data, dict):
        raise DeclarationError(f"Declaration {origin} must be a JSON object, got {type(data).__name__}")
    try:
        return BuildDeclaration(**data)
    except ValidationError as e:
        raise DeclarationError(f"Invalid declaration {origin}: {e}") from e


def load_declaration_from_path(path: Union[str, Path]) -> BuildDeclaration:
    """Load a declaration from a JSON file path."""
    declaration_path = Path(path)
    if not declaration_path.is_file():
        raise FileNotFoundError(f"Declaration file not found: {declaration_path}")
    try:
        with open(declaration_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except UnicodeDecodeError as e:
        raise DeclarationError(f"Declaration {declaration_path} is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise DeclarationError(f"Declaration {declaration_path} is not valid JSON: {e}") from e
    return load_declaration_from_dict(data, origin=str(declaration_path))
