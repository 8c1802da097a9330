try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import json
from pathlib import Path

import pytest

from scripts import validate_tokens


@pytest.fixture(autouse=True)
def _plaintext_storage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TOKEN_ENCRYPTION_SECRET", raising=False)


def test_reports_metadata_without_token_values(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "tokens.json"
    path.write_text(
        json.dumps(
            {
                "u1": {
                    "access_token": "secret-access",
                    "refresh_token": "secret-refresh",
                    "scope": "User.Read Mail.Read",
                    "expires_at": 1768478400000,
                },
                "broken": {"scope": "Mail.Read"},
            }
        ),
        encoding="utf-8",
    )

    exit_code = validate_tokens.main(["--storage-path", str(path)])

    captured = capsys.readouterr()
    assert exit_code == validate_tokens.EXIT_OK
    assert "Found 1 authenticated users: u1" in captured.out
    assert "has refresh token: True" in captured.out
    assert "missing Mail.Send scope" in captured.err
    assert "secret-access" not in captured.out + captured.err
    assert list(json.loads(path.read_text(encoding="utf-8"))) == ["u1"]


def test_recreates_corrupt_storage(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "tokens.json"
    path.write_text("{broken", encoding="utf-8")

    exit_code = validate_tokens.main(["--storage-path", str(path)])

    assert exit_code == validate_tokens.EXIT_STORAGE_RECREATED
    assert json.loads(path.read_text(encoding="utf-8")) == {}
    assert "recreated" in capsys.readouterr().err


def test_missing_storage_has_no_users(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = validate_tokens.main(["--storage-path", str(tmp_path / "absent.json")])

    assert exit_code == validate_tokens.EXIT_OK
    assert "No authenticated users found" in capsys.readouterr().out
