import ast
import pathlib

SRC = pathlib.Path(__file__).resolve().parents[2] / "src"


def _imports(path: pathlib.Path):
    tree = ast.parse(path.read_text(encoding="utf-8"))
    for node in ast.walk(tree):
        if isinstance(node, ast.ImportFrom) and node.module:
            yield node.module
        elif isinstance(node, ast.Import):
            for n in node.names:
                yield n.name


def test_no_infrastructure_imports_in_api():
    for api_py in (SRC / "messaging" / "api").glob("**/*.py"):
        for module in _imports(api_py):
            if module.startswith("messaging.infrastructure"):
                raise AssertionError(f"Infrastructure import in API file: {api_py} -> {module}")


def test_domain_does_not_import_application_or_infrastructure():
    for domain_py in (SRC / "messaging" / "domain").glob("**/*.py"):
        for module in _imports(domain_py):
            if module.startswith(("messaging.application", "messaging.infrastructure", "fastapi", "redis", "httpx")):
                raise AssertionError(f"Outer layer import in domain file: {domain_py} -> {module}")
