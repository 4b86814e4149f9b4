from __future__ import annotations

import re
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
PACKAGE_DIR = PROJECT_ROOT / "doccredit"
API_V1_DIR = PACKAGE_DIR / "api" / "v1"
DOMAINS_DIR = PACKAGE_DIR / "domains"


def _python_files(root: Path) -> list[Path]:
    return sorted(path for path in root.rglob("*.py") if path.is_file())


def test_api_v1_is_transport_only() -> None:
    allowed = re.compile(r"^from \.\.\.domains\.[a-zA-Z0-9_]+\.routes import ")
    violations: list[str] = []
    for path in _python_files(API_V1_DIR):
        for line in path.read_text(encoding="utf-8").splitlines():
            if line.startswith(("from ", "import ")) and not allowed.match(line):
                violations.append(f"{path}: {line}")
    assert not violations, f"api/v1 modules may only re-export domain routers: {violations}"


def test_domains_do_not_import_each_other() -> None:
    violations: list[str] = []
    pattern_qualified = re.compile(r"(?:from|import)\s+doccredit\.domains\.([a-zA-Z0-9_]+)")
    pattern_relative_three = re.compile(r"(?:from|import)\s+\.\.\.domains\.([a-zA-Z0-9_]+)")
    pattern_relative_two = re.compile(r"(?:from|import)\s+\.\.([a-zA-Z0-9_]+)\.routes\b")

    for path in _python_files(DOMAINS_DIR):
        current_domain = path.relative_to(DOMAINS_DIR).parts[0]
        content = path.read_text(encoding="utf-8")
        matches = (
            [m.group(1) for m in pattern_qualified.finditer(content)]
            + [m.group(1) for m in pattern_relative_three.finditer(content)]
            + [m.group(1) for m in pattern_relative_two.finditer(content)]
        )
        for imported_domain in matches:
            if imported_domain != current_domain:
                violations.append(f"{path} imports {imported_domain}")

    assert not violations, f"Domain route modules must not import other domains: {violations}"


def test_service_layer_has_no_http_dependencies() -> None:
    disallowed = re.compile(r"(?:from|import)\s+(?:fastapi|starlette)\b|\.domains\b")
    violations: list[str] = []
    for folder in ("components", "services", "models", "shared"):
        for path in _python_files(PACKAGE_DIR / folder):
            if disallowed.search(path.read_text(encoding="utf-8")):
                violations.append(str(path))
    assert not violations, f"Service and model modules must not depend on the HTTP layer: {violations}"


def test_balances_are_only_written_by_the_ledger() -> None:
    writer = re.compile(r"update\(CreditBalance\)")
    owners = {PACKAGE_DIR / "services" / "credit_ledger_service.py"}
    violations = [
        str(path)
        for path in _python_files(PACKAGE_DIR)
        if path not in owners and writer.search(path.read_text(encoding="utf-8"))
    ]
    assert not violations, f"Only the credit ledger may update balances: {violations}"
