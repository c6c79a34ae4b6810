import json
import sys


def py(code: str) -> str:
    """Shell command running ``code`` with this interpreter (no double quotes in code)."""
    return f'"{sys.executable}" -c "{code}"'


def write_plan(path, jobs, **extra):
    path.write_text(json.dumps(dict(extra, jobs=jobs)), encoding="utf-8")
    return path
