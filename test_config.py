"""
Tests for configuration loading and validation
"""

import json

from offer_engine import InMemoryOfferStore, OfferEngine
from offer_engine.config import ConfigManager, OfferEngineConfig


def test_defaults():
    config = OfferEngineConfig()
    assert config.db_path == "offers.db"
    assert config.output_precision == 2
    assert config.max_alternatives == 2
    assert config.parallel_summary is False
    assert (config.default_page_limit, config.max_page_limit) == (50, 100)


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("OFFER_ENGINE_MAX_ALTERNATIVES", "3")
    monkeypatch.setenv("OFFER_ENGINE_PARALLEL_SUMMARY", "true")

    config = ConfigManager(str(tmp_path / "missing.json")).get_config()

    assert config.max_alternatives == 3
    assert config.parallel_summary is True


def test_environment_cannot_change_summary_instruments(tmp_path, monkeypatch):
    """The summary always reports the same four instruments"""
    monkeypatch.setenv("OFFER_ENGINE_SUMMARY_INSTRUMENTS", "UPI")

    config = ConfigManager(str(tmp_path / "missing.json")).get_config()
    engine = OfferEngine(store=InMemoryOfferStore(), config=config, setup_logging=False)
    summary = engine.get_discount_summary("1000", "HDFC")

    assert list(summary) == ["CREDIT", "DEBIT", "EMI_OPTIONS", "NET_BANKING"]
    assert "summary_instruments" not in config.model_dump()


def test_file_takes_precedence(tmp_path, monkeypatch):
    config_file = tmp_path / "offer_engine_config.json"
    config_file.write_text(json.dumps({"db_path": "from_file.db"}), encoding="utf-8")
    monkeypatch.setenv("OFFER_ENGINE_DB_PATH", "from_env.db")

    assert ConfigManager(str(config_file)).get_config().db_path == "from_file.db"


def test_broken_file_falls_back_to_defaults(tmp_path):
    config_file = tmp_path / "offer_engine_config.json"
    config_file.write_text("{broken", encoding="utf-8")

    assert ConfigManager(str(config_file)).get_config() == OfferEngineConfig()


def test_save_and_reload(tmp_path):
    config_file = str(tmp_path / "offer_engine_config.json")
    manager = ConfigManager(config_file)
    manager.update_config(max_workers=8, not_a_field="ignored")
    manager.save_config()

    reloaded = ConfigManager(config_file).get_config()
    assert reloaded.max_workers == 8


def test_validate_config(tmp_path):
    manager = ConfigManager(str(tmp_path / "missing.json"))
    assert manager.validate_config() == {"valid": True, "warnings": [], "errors": []}

    manager.update_config(log_level="LOUD", max_workers=0, max_alternatives=-1)
    report = manager.validate_config()
    assert report["valid"] is False
    assert len(report["errors"]) == 3

    manager.reset_to_defaults()
    assert manager.validate_config()["valid"] is True
