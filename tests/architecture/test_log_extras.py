"""
Logging ``extra`` keys may not shadow LogRecord attributes.

``Logger.makeRecord`` raises KeyError when an ``extra`` key names an
existing record attribute (``created``, ``name``, ``msg``, ...), which
turns the log call itself into a failure.  Every ``extra={...}`` literal
under the packages and scripts is scanned via AST.
"""

import ast
import glob
import logging
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]

_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


def _extra_keys(filepath: str) -> list[tuple[int, str]]:
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)
    keys: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if not isinstance(node, ast.Call):
            continue
        for keyword in node.keywords:
            if keyword.arg == "extra" and isinstance(keyword.value, ast.Dict):
                for key in keyword.value.keys:
                    if isinstance(key, ast.Constant) and isinstance(key.value, str):
                        keys.append((key.lineno, key.value))
    return keys


def _sources() -> list[str]:
    files: list[str] = []
    for package in ("approval_kernel", "approval_engines", "approval_config", "scripts"):
        files.extend(glob.glob(f"{ROOT / package}/**/*.py", recursive=True))
    return sorted(files)


def test_sources_are_scanned():
    assert any(_extra_keys(path) for path in _sources())


def test_no_extra_key_shadows_a_record_attribute():
    clashes = [
        f"{Path(path).relative_to(ROOT)}:{lineno} uses extra key {key!r}"
        for path in _sources()
        for lineno, key in _extra_keys(path)
        if key in _RESERVED
    ]
    assert clashes == [], "\n".join(clashes)
