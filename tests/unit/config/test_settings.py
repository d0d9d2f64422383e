"""Tests for application settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from soundshelf.config import DatabaseSettings, ScannerSettings, Settings


class TestSettings:
    def test_defaults(self) -> None:
        scanner = ScannerSettings()
        assert scanner.ffprobe_path == "ffprobe"
        assert scanner.ffmpeg_path == "ffmpeg"
        assert scanner.hash_algorithm == "sha256"
        assert scanner.rescan_interval_hours > 0

    def test_nested_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCANNER__FFPROBE_PATH", "/opt/ffmpeg/bin/ffprobe")
        monkeypatch.setenv("SCANNER__RESCAN_INTERVAL_HOURS", "6")
        settings = Settings()
        assert settings.scanner.ffprobe_path == "/opt/ffmpeg/bin/ffprobe"
        assert settings.scanner.rescan_interval_hours == 6

    def test_log_level_is_normalized(self) -> None:
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValidationError):
            Settings(log_level="CHATTY")

    def test_rescan_interval_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ScannerSettings(rescan_interval_hours=0)

    def test_hash_algorithm_is_normalized(self) -> None:
        assert ScannerSettings(hash_algorithm=" SHA512 ").hash_algorithm == "sha512"

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("sqlite+aiosqlite:///./catalog.db", Path("./catalog.db")),
            ("sqlite+aiosqlite:////srv/catalog.db", Path("/srv/catalog.db")),
            ("sqlite+aiosqlite://", None),
            ("sqlite+aiosqlite:///:memory:", None),
            ("postgresql+asyncpg://u:p@db/catalog", None),
        ],
    )
    def test_sqlite_db_path(self, url: str, expected: Path | None) -> None:
        settings = Settings(database=DatabaseSettings(url=url))
        assert settings.get_sqlite_db_path() == expected
