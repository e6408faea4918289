"""Dev task entry points declared in pyproject.toml: uv run lint | format | type-check | test | test-cov | validate-fixtures."""

from pathlib import Path
import subprocess
import sys

PACKAGE = "lbtargetgroup"
TEST_DIR = "tests"
FIXTURES_DIR = "fixtures"


def _python(*args: str) -> int:
    return subprocess.run([sys.executable, "-m", *args]).returncode


def _exit(code: int) -> None:
    sys.exit(code)


def lint() -> None:
    """ruff check, pass --fix through."""
    _exit(_python("ruff", "check", *sys.argv[1:], PACKAGE, TEST_DIR))


def format() -> None:
    _exit(_python("ruff", "format", PACKAGE, TEST_DIR))


def type_check() -> None:
    _exit(_python("pyright", PACKAGE))


def test() -> None:
    _exit(_python("pytest", f"{TEST_DIR}/", "-v", *sys.argv[1:]))


def test_cov() -> None:
    _exit(_python("pytest", f"{TEST_DIR}/", f"--cov={PACKAGE}", "--cov-report=term-missing", "-v"))


def validate_fixtures() -> None:
    """Run `lbtg validate` over every fixtures/*.yaml; exit non-zero on the first invalid file."""
    for path in sorted(Path(FIXTURES_DIR).glob("*.yaml")):
        code = _python(f"{PACKAGE}.cli", "validate", str(path))
        if code != 0:
            _exit(code)
    _exit(0)
