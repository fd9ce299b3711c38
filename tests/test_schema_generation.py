"""Tests for JSON schema export of the declaration and store formats."""

import importlib.util
import json
from pathlib import Path

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "generate_schemas.py"


def _load_script():
    module_spec = importlib.util.spec_from_file_location("generate_schemas", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def test_generate_schemas(tmp_path, capsys):
    written = _load_script().generate_schemas(tmp_path / "schemas")
    assert sorted(p.name for p in written) == ["repbuild.schema.json", "signatures.schema.json"]

    declaration = json.loads((tmp_path / "schemas" / "repbuild.schema.json").read_text(encoding="utf-8"))
    assert declaration["title"] == "BuildDeclaration"
    assert "nodes" in declaration["properties"]
    assert declaration["additionalProperties"] is False

    store = json.loads((tmp_path / "schemas" / "signatures.schema.json").read_text(encoding="utf-8"))
    assert "sequence" in store["properties"]
    assert "Schema generation complete!" in capsys.readouterr().out
