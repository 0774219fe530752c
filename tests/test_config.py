import pytest

from imessage_archive.config import DEFAULT_DB_PATH, ArchiveConfig, load_config

ENV_VARS = (
    "IMESSAGE_DB_PATH",
    "IMESSAGE_VCF_PATH",
    "IMESSAGE_REGION",
    "IMESSAGE_PAGE_SIZE",
    "IMESSAGE_CONTEXT_SIZE",
    "IMESSAGE_SEARCH_LIMIT",
    "IMESSAGE_SEARCH_BATCH_SIZE",
    "IMESSAGE_SEARCH_TIMEOUT",
    "IMESSAGE_EXCLUDE_SERVICES",
    "IMESSAGE_SHOW_PROGRESS",
    "IMESSAGE_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def write_env(tmp_path, text):
    path = tmp_path / ".env"
    path.write_text(text)
    return str(path)


def test_defaults(tmp_path):
    config = load_config(write_env(tmp_path, ""))
    assert config == ArchiveConfig()
    assert config.db_path == DEFAULT_DB_PATH
    assert config.page_size == 100
    assert config.context_half_width == 50
    assert config.search_timeout is None
    assert config.excluded_services == ()
    assert config.expanded_db_path.name == "chat.db"
    assert "~" not in str(config.expanded_db_path)


def test_values_from_env_file(tmp_path):
    env_file = write_env(tmp_path, "\n".join([
        'IMESSAGE_DB_PATH="~/Desktop/chat.db"',
        "IMESSAGE_REGION=GB",
        "IMESSAGE_PAGE_SIZE=25",
        "IMESSAGE_CONTEXT_SIZE=10",
        "IMESSAGE_SEARCH_TIMEOUT=2.5",
        "IMESSAGE_EXCLUDE_SERVICES=SMS, RCS,",
        "IMESSAGE_SHOW_PROGRESS=yes",
        "IMESSAGE_LOG_LEVEL=debug",
    ]))
    config = load_config(env_file)

    assert config.db_path == "~/Desktop/chat.db"
    assert config.region == "GB"
    assert config.page_size == 25
    assert config.context_half_width == 10
    assert config.search_timeout == 2.5
    assert config.excluded_services == ("SMS", "RCS")
    assert config.show_progress
    assert config.log_level == "DEBUG"


def test_environment_wins_over_file(tmp_path, monkeypatch):
    monkeypatch.setenv("IMESSAGE_PAGE_SIZE", "7")
    config = load_config(write_env(tmp_path, "IMESSAGE_PAGE_SIZE=25\n"))
    assert config.page_size == 7


@pytest.mark.parametrize("name, value", [
    ("IMESSAGE_PAGE_SIZE", "lots"),
    ("IMESSAGE_PAGE_SIZE", "0"),
    ("IMESSAGE_CONTEXT_SIZE", "-1"),
    ("IMESSAGE_SEARCH_TIMEOUT", "0"),
    ("IMESSAGE_SEARCH_TIMEOUT", "soon"),
    ("IMESSAGE_LOG_LEVEL", "LOUD"),
])
def test_invalid_values(tmp_path, monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=name):
        load_config(write_env(tmp_path, ""))
