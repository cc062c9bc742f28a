#!/usr/bin/env python
"""Export the JSON Schema of the structured schema document format.

Usage:
    python scripts/export_schemas.py --out-dir build/schemas

Outputs:
    cedar_schema_document.json    JSON Schema for structured (JSON) schema documents
"""
from __future__ import annotations

import argparse
import json
from pathlib import Path

from cedar_schema.json_parser import document_json_schema


def export_document_schema(out_dir: Path) -> Path:
    document_schema = document_json_schema()
    path = out_dir / "cedar_schema_document.json"
    path.write_text(json.dumps(document_schema, indent=2))
    return path


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--out-dir", default="build/schemas", help="Output directory")
    args = parser.parse_args()

    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    document_path = export_document_schema(out_dir)

    print(f"Exported document JSON Schema -> {document_path}")


if __name__ == "__main__":  # pragma: no cover
    main()
