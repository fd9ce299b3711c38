"""Generate JSON schemas from Pydantic models and save to schemas/ directory."""

import json
import sys
from pathlib import Path

from repbuild.kernel.declaration import BuildDeclaration
from repbuild.kernel.signatures import SignatureFile


SCHEMAS = {
    "repbuild.schema.json": BuildDeclaration,
    "signatures.schema.json": SignatureFile,
}


def generate_schemas(schemas_dir=None):
    """Generate JSON schemas for the declaration and signature store files.

    Returns the list of written paths.
    """
    if schemas_dir is None:
        schemas_dir = Path(__file__).parent.parent / "schemas"
    schemas_dir = Path(schemas_dir)
    schemas_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for filename, model in SCHEMAS.items():
        schema = model.model_json_schema()
        schema_path = schemas_dir / filename
        with open(schema_path, 'w', encoding='utf-8') as f:
            json.dump(schema, f, indent=2, ensure_ascii=False)
            f.write("\n")
        print(f"Generated: {schema_path}")
        written.append(schema_path)

    print("\nSchema generation complete!")
    return written


if __name__ == "__main__":
    generate_schemas(sys.argv[1] if len(sys.argv) > 1 else None)
