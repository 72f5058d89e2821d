#!/usr/bin/env python3
"""
Check that the app imports cleanly (same chain as CI when loading conftest).
Run before pushing to catch ModuleNotFoundError / ImportError from reorg.

From repo root:
  python scripts/check_imports.py
  pytest tests/ --collect-only -q   # alternative: collect tests (loads conftest)
"""
import os
import sys

# Ensure repo root is on path (when run as python scripts/check_imports.py)
_repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _repo_root not in sys.path:
    sys.path.insert(0, _repo_root)

# Same env as tests/conftest.py so app.main and its deps load
os.environ.setdefault("APP_ENV", "dev")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:test-token")
os.environ.setdefault("TELEGRAM_TARGET_CHAT_ID", "-100777")
os.environ.setdefault("TELEGRAM_DRY_RUN", "true")


def main() -> int:
    try:
        import app.jobs.deliver_pending  # noqa: F401
        from app.main import app  # noqa: F401
    except Exception as e:
        print("FAIL: Import error (CI would fail here):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 1
    print("OK: app.main and the sweep job import successfully.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
