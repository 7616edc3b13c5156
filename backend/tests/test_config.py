import pytest

from imagegallery.core.config import DEV_STORAGE_CONNECTION_STRING, load_settings, parse_duration_seconds


def test_load_settings_dev_defaults() -> None:
    s = load_settings({})
    assert s.app_env == "dev"
    assert s.database_url == "sqlite+aiosqlite:///./data/gallery.db"
    assert s.db_auto_migrate is True
    assert s.db_seed_demo is False
    assert s.storage_connection_string == DEV_STORAGE_CONNECTION_STRING
    assert s.storage_container == "images"
    assert s.storage_fault_injection is False
    assert s.throttling_mode == "rate"
    assert s.throttling_rate == 0.5
    assert s.throttling_seed is None
    assert s.retry_max_retries == 3
    assert s.retry_delay_s == pytest.approx(0.8)
    assert s.retry_mode == "exponential"
    assert s.transfer_initial_size == 256 * 1024 * 1024
    assert s.transfer_max_size == 4 * 1024 * 1024
    assert s.transfer_max_concurrency == 4
    assert s.gallery_page_size == 8


def test_load_settings_prod_requires_real_storage_account() -> None:
    with pytest.raises(ValueError) as excinfo:
        load_settings({"APP_ENV": "prod"})
    assert "STORAGE_CONNECTION_STRING" in str(excinfo.value)


def test_load_settings_prod_accepts_account_connection_string() -> None:
    s = load_settings(
        {
            "APP_ENV": "production",
            "STORAGE_CONNECTION_STRING": "AccountName=gallery;AccountKey=a2V5",
        }
    )
    assert s.is_prod is True


def test_load_settings_reads_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORAGE_FAULT_INJECTION", "true")
    monkeypatch.setenv("THROTTLING_MODE", "WINDOW")
    monkeypatch.setenv("THROTTLING_AVAILABLE_INTERVAL", "00:01:00")
    monkeypatch.setenv("THROTTLING_INTERVAL", "15s")
    monkeypatch.setenv("THROTTLING_SEED", "42")
    monkeypatch.setenv("RETRY_DELAY", "250ms")
    monkeypatch.setenv("RETRY_MODE", "fixed")

    s = load_settings()
    assert s.storage_fault_injection is True
    assert s.throttling_mode == "window"
    assert s.throttling_available_interval_s == 60.0
    assert s.throttling_interval_s == 15.0
    assert s.throttling_seed == 42
    assert s.retry_delay_s == pytest.approx(0.25)
    assert s.retry_mode == "fixed"


def test_load_settings_clamps_and_falls_back() -> None:
    s = load_settings(
        {
            "THROTTLING_RATE": "1.7",
            "THROTTLING_MODE": "bogus",
            "RETRY_MAX_RETRIES": "nope",
            "RETRY_DELAY": "soon",
            "GALLERY_PAGE_SIZE": "0",
        }
    )
    assert s.throttling_rate == 1.0
    assert s.throttling_mode == "rate"
    assert s.retry_max_retries == 3
    assert s.retry_delay_s == pytest.approx(0.8)
    assert s.gallery_page_size == 1


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("2.5", 2.5),
        ("500ms", 0.5),
        ("30s", 30.0),
        ("2m", 120.0),
        ("1h", 3600.0),
        ("00:00:30", 30.0),
        ("1.00:00:00", 86400.0),
    ],
)
def test_parse_duration_seconds(text: str, expected: float) -> None:
    assert parse_duration_seconds(text) == pytest.approx(expected)


@pytest.mark.parametrize("text", ["", "soon", "00:61:00", "-5s"])
def test_parse_duration_seconds_rejects_garbage(text: str) -> None:
    assert parse_duration_seconds(text) is None
