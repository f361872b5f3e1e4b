import logging
from unittest.mock import MagicMock

import pytest

from conftest import FakeStore, history
from post_tags.errors import StorageError
from post_tags.records import PostHistory, PostHistoryType, Tag
from post_tags.scripts import rebuild_post_tags


@pytest.fixture
def fake_store(monkeypatch, tags):
    store = FakeStore(rows={Tag: tags, PostHistory: [history(1, 42, 10, "<python>", PostHistoryType.INITIAL_TAGS)]})
    monkeypatch.setattr(rebuild_post_tags, "get_connection", MagicMock(return_value=object()))
    monkeypatch.setattr(rebuild_post_tags, "Store", MagicMock(return_value=store))
    return store


@pytest.fixture
def db_env(clean_env):
    clean_env.setenv("DATABASE_URL", "postgresql://db/so")
    return clean_env


def test_successful_run(db_env, fake_store):
    assert rebuild_post_tags.main([]) == 0
    assert fake_store.inserted == [("PostTags", 42, 1)]
    assert fake_store.closed


def test_bad_configuration_exits_before_connecting(clean_env, fake_store, caplog):
    with caplog.at_level(logging.ERROR):
        assert rebuild_post_tags.main([]) == 1
    rebuild_post_tags.get_connection.assert_not_called()
    assert "Invalid configuration" in caplog.text


def test_existing_table_exit_code(db_env, fake_store):
    fake_store.existing_tables.add("PostTags")
    assert rebuild_post_tags.main([]) == 2
    assert fake_store.inserted == []
    assert fake_store.closed


def test_allow_drop_flag(db_env, fake_store):
    fake_store.existing_tables.add("PostTags")
    assert rebuild_post_tags.main(["--allow-drop", "--destination-table", "PostTags"]) == 0
    assert "DROP TABLE IF EXISTS" in fake_store.executed[0]


def test_storage_error_exit_code(db_env, fake_store):
    fake_store.fail_after_inserts = 0
    assert rebuild_post_tags.main([]) == 3
    assert fake_store.closed


def test_connection_failure_exit_code(db_env, monkeypatch):
    monkeypatch.setattr(
        rebuild_post_tags, "get_connection", MagicMock(side_effect=StorageError("Database connection failed."))
    )
    assert rebuild_post_tags.main([]) == 3


def test_malformed_database_url_is_a_configuration_error(db_env, fake_store, caplog):
    db_env.setenv("DATABASE_URL", "not a dsn")
    with caplog.at_level(logging.ERROR):
        assert rebuild_post_tags.main([]) == 1
    rebuild_post_tags.get_connection.assert_not_called()
    assert "not a valid connection string" in caplog.text


def test_log_path_creates_the_log_file(db_env, fake_store, tmp_path):
    log_file = tmp_path / "rebuild.log"
    assert rebuild_post_tags.main(["--log-path", str(log_file)]) == 0
    assert log_file.exists()


def test_log_path_in_missing_directory(db_env, fake_store, tmp_path, caplog):
    log_file = tmp_path / "missing" / "rebuild.log"
    with caplog.at_level(logging.ERROR):
        assert rebuild_post_tags.main(["--log-path", str(log_file)]) == 1
    rebuild_post_tags.get_connection.assert_not_called()
    assert "Cannot open log file" in caplog.text
