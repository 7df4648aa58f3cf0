import ast
import pathlib

PACKAGE = pathlib.Path(__file__).resolve().parents[2] / "src" / "system_settings"

# modules the domain layer must stay free of
DOMAIN_FORBIDDEN = ("sqlalchemy", "redis", "fastapi", "apscheduler", "httpx",
                    "src.system_settings.infrastructure", "src.system_settings.application",
                    "src.system_settings.api")


def imported_modules(path: pathlib.Path):
    tree = ast.parse(path.read_text(encoding="utf-8"))
    for node in ast.walk(tree):
        if isinstance(node, ast.ImportFrom) and node.module:
            # relative imports resolve inside the package being checked
            yield ("." * node.level) + node.module
        elif isinstance(node, ast.Import):
            for n in node.names:
                yield n.name


def offending(paths, is_forbidden):
    return [f"{p} -> {m}" for p in paths for m in imported_modules(p) if is_forbidden(m)]


def test_no_infrastructure_imports_in_api():
    api_files = sorted(PACKAGE.glob("api/**/*.py"))
    assert api_files
    assert offending(api_files, lambda m: "infrastructure" in m) == []


def test_domain_layer_imports_no_storage_or_web_stack():
    domain_files = sorted(PACKAGE.glob("domain/**/*.py"))
    assert domain_files

    def forbidden(module: str) -> bool:
        if module.startswith(".."):
            return True
        return any(module == f or module.startswith(f + ".") for f in DOMAIN_FORBIDDEN)

    assert offending(domain_files, forbidden) == []
