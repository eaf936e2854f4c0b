from __future__ import annotations

import ast
from dataclasses import dataclass
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
PACKAGE_ROOT = PROJECT_ROOT / "hotel_offline"
LAYERS = {"core", "domain", "application", "infrastructure", "bootstrap", "entrypoints"}

# Each layer may only import the layers listed here (plus itself).
ALLOWED_LAYER_DEPENDENCIES: dict[str, set[str]] = {
    "core": set(),
    "domain": {"core"},
    "application": {"core", "domain"},
    "infrastructure": {"core", "domain"},
    "bootstrap": {"core", "domain", "application", "infrastructure"},
    "entrypoints": {"core", "domain", "bootstrap"},
}

TECHNICAL_LIBRARIES_BLOCKED_IN_APPLICATION = {
    "sqlite3",
    "cryptography",
}


@dataclass(frozen=True)
class ImportRecord:
    source_file: str
    source_layer: str
    imported_module: str


def _layer_from_file(path: Path) -> str | None:
    relative_parts = path.relative_to(PACKAGE_ROOT).parts
    if len(relative_parts) < 2:
        return None
    layer = relative_parts[0]
    return layer if layer in LAYERS else None


def _layer_from_module(module: str) -> str | None:
    parts = module.split(".")
    if len(parts) >= 2 and parts[0] == "hotel_offline" and parts[1] in LAYERS:
        return parts[1]
    return None


def _iter_imports(py_file: Path) -> list[ImportRecord]:
    tree = ast.parse(py_file.read_text(encoding="utf-8"), filename=str(py_file))
    source_layer = _layer_from_file(py_file)
    if source_layer is None:
        return []
    relative_file = py_file.relative_to(PROJECT_ROOT).as_posix()

    imports: list[ImportRecord] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            imports.extend(ImportRecord(relative_file, source_layer, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            imports.append(ImportRecord(relative_file, source_layer, node.module))
    return imports


def _violation_for(record: ImportRecord) -> str | None:
    destination_layer = _layer_from_module(record.imported_module)
    if destination_layer is not None and destination_layer != record.source_layer:
        if destination_layer not in ALLOWED_LAYER_DEPENDENCIES[record.source_layer]:
            return f"{record.source_layer} cannot depend on {destination_layer}"

    top_level_module = record.imported_module.split(".")[0]
    if record.source_layer in {"application", "domain"} and top_level_module in TECHNICAL_LIBRARIES_BLOCKED_IN_APPLICATION:
        return f"{record.source_layer} must reach {top_level_module} through a port"
    return None


def test_package_has_no_relative_imports() -> None:
    offenders = [
        py_file.relative_to(PROJECT_ROOT).as_posix()
        for py_file in sorted(PACKAGE_ROOT.rglob("*.py"))
        for node in ast.walk(ast.parse(py_file.read_text(encoding="utf-8")))
        if isinstance(node, ast.ImportFrom) and node.level > 0
    ]

    assert not offenders


def test_architecture_import_rules() -> None:
    violations: list[str] = []

    for py_file in sorted(PACKAGE_ROOT.rglob("*.py")):
        for record in _iter_imports(py_file):
            broken_rule = _violation_for(record)
            if broken_rule is None:
                continue
            violations.append(
                "\n".join(
                    [
                        f"Source file: {record.source_file}",
                        f"Forbidden import: {record.imported_module}",
                        f"Rule: {broken_rule}",
                    ]
                )
            )

    assert not violations, "Layer import violations detected:\n\n" + "\n\n".join(violations)
