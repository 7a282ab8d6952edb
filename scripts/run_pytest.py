"""Run the passbundle test suite from the repository root.

Usage: python scripts/run_pytest.py [pytest args...]

Extra arguments are passed through to pytest (for example ``-k verify``
or ``tests/test_signing.py``). ``src`` is put on PYTHONPATH so the suite
runs without an editable install.
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def main(argv: list[str] | None = None) -> int:
    """Run pytest; returns its exit code, or 0 when Python is too old."""
    if sys.version_info < (3, 11):
        print("passbundle tests require Python 3.11+; skipping.")
        return 0

    args = list(sys.argv[1:] if argv is None else argv)
    if not any(not a.startswith("-") for a in args):
        args.append(str(ROOT / "tests"))

    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(
        p for p in [str(ROOT / "src"), env.get("PYTHONPATH", "")] if p
    )

    return subprocess.call(
        [sys.executable, "-m", "pytest", "--tb=short", "--strict-markers", *args],
        cwd=ROOT,
        env=env,
    )


if __name__ == "__main__":
    raise SystemExit(main())
