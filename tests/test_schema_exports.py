import json
import os
import subprocess
import sys
from pathlib import Path

from cedar_schema.json_parser import document_json_schema

ROOT = Path(__file__).resolve().parent.parent


def test_document_schema_uses_wire_names():
    document_schema = document_json_schema()
    namespace = document_schema["$defs"]["NamespaceModel"]

    assert document_schema["type"] == "object"
    assert set(namespace["properties"]) == {"entityTypes", "actions", "commonTypes", "annotations"}
    assert "appliesTo" in document_schema["$defs"]["ActionModel"]["properties"]


def test_export_script_runs(tmp_path):
    out_dir = tmp_path / "schemas"
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(
        filter(None, [str(ROOT / "src"), env.get("PYTHONPATH")])
    )
    cmd = [sys.executable, str(ROOT / "scripts" / "export_schemas.py"), "--out-dir", str(out_dir)]
    subprocess.check_call(cmd, env=env)

    document_path = out_dir / "cedar_schema_document.json"
    assert document_path.exists()
    data = json.loads(document_path.read_text())
    assert "NamespaceModel" in data["$defs"]
