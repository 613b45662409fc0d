"""
Import-boundary enforcement.

1. Engine purity      -- approval_engines/** may not import the ORM, the
                         database layer, models, selectors, services or
                         configuration.
2. Engine no-impure   -- approval_engines/** may not read the wall clock
                         or the environment.
3. Domain purity      -- approval_kernel/domain/** may not import the ORM
                         or anything above the domain layer.
4. Kernel direction   -- approval_kernel/** never imports approval_config
                         at runtime; type-checking imports are allowed.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[str]:
    return sorted(glob.glob(f"{ROOT / package}/**/*.py", recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for path in _python_files(package):
        for lineno, module in _extract_imports(path):
            if _matches_any(module, forbidden):
                found.append(f"{Path(path).relative_to(ROOT)}:{lineno} imports {module}")
    return found


_IMPURE_ENGINE_IMPORTS = (
    "sqlalchemy",
    "approval_kernel.db",
    "approval_kernel.models",
    "approval_kernel.selectors",
    "approval_kernel.services",
    "approval_config",
)


class TestEnginePurity:

    def test_engines_exist(self):
        assert _python_files("approval_engines")

    def test_no_storage_or_service_imports(self):
        assert _violations("approval_engines", _IMPURE_ENGINE_IMPORTS) == []

    def test_no_clock_or_environment_reads(self):
        banned = {"datetime.now", "datetime.utcnow", "time.time", "os.environ", "os.getenv"}
        found = []
        for path in _python_files("approval_engines"):
            tree = ast.parse(Path(path).read_text(), filename=path)
            for node in ast.walk(tree):
                if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
                    name = f"{node.value.id}.{node.attr}"
                    if name in banned:
                        found.append(f"{Path(path).relative_to(ROOT)}:{node.lineno} {name}")
        assert found == []


class TestDomainPurity:

    def test_domain_has_no_orm_or_upper_layers(self):
        forbidden = (
            "sqlalchemy",
            "approval_kernel.db",
            "approval_kernel.models",
            "approval_kernel.selectors",
            "approval_kernel.services",
            "approval_engines",
            "approval_config",
        )
        assert _violations("approval_kernel/domain", forbidden) == []


class TestKernelDirection:

    def test_kernel_never_imports_configuration_at_runtime(self):
        found = []
        for path in _python_files("approval_kernel"):
            tree = ast.parse(Path(path).read_text(), filename=path)
            for node in tree.body:
                if isinstance(node, ast.ImportFrom) and node.module and _matches_any(
                    node.module, ("approval_config",),
                ):
                    found.append(f"{Path(path).relative_to(ROOT)}:{node.lineno}")
        assert found == []
