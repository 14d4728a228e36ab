import logging

from statement_ledger.core import settings
from statement_ledger.domain.tags import merge_tags, normalize_tags, parse_tag_list
from statement_ledger.logger import ColourizedFormatter, get_logging_config


def test_read_config_file(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text(
        "\n".join([
            "# comment",
            "LOG_LEVEL: debug",
            "DEFAULT_CURRENCY: 'eur'  # trailing comment",
            'STRAKSBETALING_CATEGORY: "p2p # not a comment"',
            "EMPTY:",
            "no separator here",
            ": missing key",
        ]),
        encoding="utf-8",
    )

    assert settings.read_config_file(str(config)) == {
        "LOG_LEVEL": "debug",
        "DEFAULT_CURRENCY": "eur",
        "STRAKSBETALING_CATEGORY": "p2p # not a comment",
    }


def test_read_config_file_missing(tmp_path):
    assert settings.read_config_file(str(tmp_path / "absent.yaml")) == {}
    assert settings.read_config_file(None) == {}


def test_get_env_int(monkeypatch):
    monkeypatch.setenv("RULES_BATCH_SIZE", "25")
    assert settings.get_env_int("RULES_BATCH_SIZE", 500, min_value=1) == 25

    monkeypatch.setenv("RULES_BATCH_SIZE", "lots")
    assert settings.get_env_int("RULES_BATCH_SIZE", 500, min_value=1) == 500

    monkeypatch.setenv("RULES_BATCH_SIZE", "0")
    assert settings.get_env_int("RULES_BATCH_SIZE", 500, min_value=1) == 500

    monkeypatch.delenv("RULES_BATCH_SIZE")
    assert settings.get_env_int("RULES_BATCH_SIZE", 500) == 500


def test_currency_and_straksbetaling_defaults(monkeypatch):
    monkeypatch.delenv("DEFAULT_CURRENCY", raising=False)
    monkeypatch.delenv("STRAKSBETALING_CATEGORY", raising=False)
    assert settings.default_currency() == "NOK"
    assert settings.straksbetaling_category() == "cat_other_p2p"

    monkeypatch.setenv("DEFAULT_CURRENCY", " sek ")
    monkeypatch.setenv("STRAKSBETALING_CATEGORY", "   ")
    assert settings.default_currency() == "SEK"
    assert settings.straksbetaling_category() == "cat_other_p2p"


def test_tag_helpers():
    assert parse_tag_list(" a, b ,,a ") == ["a", "b"]
    assert normalize_tags(("x", " y ", "x")) == ["x", "y"]
    assert normalize_tags(42) == []
    assert merge_tags(["a"], ["b", "a"]) == (["a", "b"], True)
    assert merge_tags(["a", "b"], ["a"]) == (["a", "b"], False)
    assert merge_tags(None, []) == ([], False)


def test_logging_config_adds_file_handler(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))

    config = get_logging_config()

    assert config["loggers"][""]["level"] == "WARNING"
    assert config["loggers"][""]["handlers"] == ["console", "file"]
    assert config["handlers"]["console"]["stream"] == "ext://sys.stderr"
    assert (tmp_path / "logs").is_dir()


def test_colourized_formatter():
    record = logging.LogRecord("statement_ledger", logging.WARNING, __file__, 1, "careful", None, None)

    coloured = ColourizedFormatter("%(levelname)s %(message)s").format(record)
    plain = ColourizedFormatter("%(levelname)s %(message)s", use_colors=False).format(record)

    assert coloured == f"{ColourizedFormatter.YELLOW}WARNING{ColourizedFormatter.RESET} careful"
    assert plain == "WARNING careful"
    assert record.levelname == "WARNING"
