from pathlib import Path

import pytest

import jurynow.config.loader as loader


def _write_config(path: Path, content: str) -> None:
    path.write_text(content, encoding="utf-8")


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    for name in (
        "JURYNOW_DATABASE_URL",
        "JURYNOW_SELECTION_SEED",
        "JURYNOW_VOTING_WINDOW_MINUTES",
        "JURYNOW_ACCESS_TOKEN_EXPIRE_MINUTES",
        "JURYNOW_JWT_ISSUER",
    ):
        monkeypatch.delenv(name, raising=False)


def test_jury_defaults_when_missing(monkeypatch, tmp_path):
    monkeypatch.setattr(loader, "_CONFIG_PATH", tmp_path / "config.yaml")

    settings = loader.get_jury_settings()

    assert settings["selection_seed"] == "jurynow"
    assert settings["dimensions"] == ["region", "age_group"]
    assert settings["categories"] == [
        "Moral",
        "Fashion",
        "Family",
        "Workplace",
        "Trivial",
        "Political",
    ]
    assert settings["voting_window_minutes"] == 60
    assert settings["reasoning_character_limit"] == 500


def test_jury_settings_coercion(monkeypatch, tmp_path):
    config_path = tmp_path / "config.yaml"
    _write_config(
        config_path,
        "\n".join(
            [
                "jury:",
                "  selection_seed: 42",
                "  dimensions: \"region, country ,region\"",
                "  categories: []",
                "  voting_window_minutes: \"-5\"",
                "  reasoning_character_limit: \"280\"",
            ]
        ),
    )
    monkeypatch.setattr(loader, "_CONFIG_PATH", config_path)

    settings = loader.get_jury_settings()

    assert settings["selection_seed"] == "42"
    assert settings["dimensions"] == ["region", "country"]
    assert len(settings["categories"]) == 6
    assert settings["voting_window_minutes"] == 60
    assert settings["reasoning_character_limit"] == 280


def test_environment_overrides_config(monkeypatch, tmp_path):
    config_path = tmp_path / "config.yaml"
    _write_config(
        config_path,
        "\n".join(
            [
                "database_url: \"sqlite:///./from-config.db\"",
                "jury:",
                "  selection_seed: from-config",
                "  voting_window_minutes: 15",
            ]
        ),
    )
    monkeypatch.setattr(loader, "_CONFIG_PATH", config_path)
    monkeypatch.setenv("JURYNOW_SELECTION_SEED", "from-env")
    monkeypatch.setenv("JURYNOW_VOTING_WINDOW_MINUTES", "5")

    settings = loader.get_jury_settings()

    assert settings["selection_seed"] == "from-env"
    assert settings["voting_window_minutes"] == 5
    assert loader.get_database_url("sqlite:///./default.db") == "sqlite:///./from-config.db"

    monkeypatch.setenv("JURYNOW_DATABASE_URL", "postgresql://db/jurynow")
    assert loader.get_database_url("sqlite:///./default.db") == "postgresql://db/jurynow"


def test_non_mapping_config_falls_back_to_defaults(monkeypatch, tmp_path):
    config_path = tmp_path / "config.yaml"
    _write_config(config_path, "- just\n- a list\n")
    monkeypatch.setattr(loader, "_CONFIG_PATH", config_path)

    assert loader.load_config() == {}
    assert loader.get_auth_settings() == {
        "access_token_expire_minutes": 30,
        "issuer": "jurynow",
    }


def test_sqlite_and_pool_settings_merge_over_defaults(monkeypatch, tmp_path):
    config_path = tmp_path / "config.yaml"
    _write_config(
        config_path,
        "\n".join(
            [
                "sqlite:",
                "  journal_mode: DELETE",
                "  write_retries: 0",
                "database_pool:",
                "  pool_size: 3",
            ]
        ),
    )
    monkeypatch.setattr(loader, "_CONFIG_PATH", config_path)

    sqlite_settings = loader.get_sqlite_settings(
        {
            "journal_mode": "WAL",
            "synchronous": "NORMAL",
            "busy_timeout_ms": 1000,
            "write_retries": 5,
            "retry_backoff_ms": 200,
        }
    )
    pool_settings = loader.get_pool_settings({"pool_size": 20, "max_overflow": 40})

    assert sqlite_settings["journal_mode"] == "DELETE"
    assert sqlite_settings["synchronous"] == "NORMAL"
    assert sqlite_settings["write_retries"] == 5
    assert pool_settings == {"pool_size": 3, "max_overflow": 40}
