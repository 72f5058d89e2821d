"""
Test that all httpx.AsyncClient instances use explicit timeouts.

A hanging Bot API call must not block a webhook invocation or a sweep run.
"""

from pathlib import Path

import httpx

from app.services.integrations.http_client import create_httpx_client, get_httpx_timeout

APP_DIR = Path(__file__).parent.parent / "app"


def test_http_client_helper_returns_timeout():
    timeout = get_httpx_timeout()
    assert isinstance(timeout, httpx.Timeout)
    assert timeout.connect == 5.0
    assert timeout.read == 10.0
    assert timeout.write == 5.0
    assert timeout.pool == 5.0


def test_create_httpx_client_uses_timeout():
    client = create_httpx_client("https://api.telegram.org/bot123:abc")
    assert isinstance(client, httpx.AsyncClient)
    assert client.timeout == get_httpx_timeout()
    assert str(client.base_url).startswith("https://api.telegram.org/bot123:abc")


def test_telegram_client_uses_timeout_helper():
    content = (APP_DIR / "services" / "messaging" / "telegram_client.py").read_text(encoding="utf-8")
    assert "create_httpx_client" in content, (
        "telegram_client.py should build its client with create_httpx_client()"
    )


def test_no_direct_httpx_client_creation_in_app():
    """app/ code must not create httpx.AsyncClient() without a timeout."""
    issues = []
    for py_file in APP_DIR.rglob("*.py"):
        if "__pycache__" in str(py_file):
            continue
        lines = py_file.read_text(encoding="utf-8").split("\n")
        for i, line in enumerate(lines, start=1):
            if "httpx.AsyncClient(" not in line or line.strip().startswith("#"):
                continue
            # Timeout may be passed on a following line
            context = "\n".join(lines[max(0, i - 2) : min(len(lines), i + 3)])
            if "timeout" not in context.lower():
                issues.append(f"{py_file.relative_to(APP_DIR.parent)}:{i}: {line.strip()}")

    assert not issues, (
        "Found httpx.AsyncClient() calls without explicit timeout. "
        "Use create_httpx_client() from app.services.integrations.http_client instead:\n\n"
        + "\n".join(f"  - {issue}" for issue in issues)
    )
