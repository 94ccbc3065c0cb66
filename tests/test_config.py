import json

from cinegrade import config
from cinegrade.logger import create_logger, get_log_file_path


def test_app_dir_follows_environment(app_home):
    assert config.get_app_dir() == app_home
    assert config.get_config_path() == app_home / "config.json"


def test_missing_file_gives_defaults():
    prefs = config.load_preferences()
    assert prefs == config.DEFAULT_PREFERENCES
    assert prefs['export_jpeg_quality'] == 95
    assert prefs['export_from_raw'] is True


def test_save_and_load_round_trip():
    config.save_preferences({'export_jpeg_quality': 80, 'export_from_raw': False, 'theme': 'dark'})
    prefs = config.load_preferences()
    assert prefs == {'export_jpeg_quality': 80, 'export_from_raw': False}


def test_corrupt_file_falls_back_to_defaults(app_home):
    app_home.mkdir(parents=True)
    (app_home / "config.json").write_text("{ not json", encoding="utf-8")
    assert config.load_preferences() == config.DEFAULT_PREFERENCES


def test_partial_file_keeps_other_defaults(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text(json.dumps({'export_jpeg_quality': 70}), encoding="utf-8")
    prefs = config.load_preferences(path)
    assert prefs['export_jpeg_quality'] == 70
    assert prefs['export_from_raw'] is True


def test_log_file_lives_under_app_dir(app_home):
    assert get_log_file_path().startswith(str(app_home))


def test_scoped_logger_prefixes_messages():
    log = create_logger("IMG_0001.dng")
    assert log._format_message("hello") == "[IMG_0001.dng] hello"
    assert create_logger()._format_message("hello") == "hello"
