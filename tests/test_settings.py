from __future__ import annotations

import json

import pytest

from hearcheck.paths import get_app_data_dir, path_settings
from hearcheck.settings import (
    apply_env_overrides,
    game_config,
    load_settings,
    puretone_config,
    save_settings,
    speech_config,
)


def test_defaults_when_missing(tmp_path):
    settings = load_settings(str(tmp_path / "missing.json"))
    assert settings['language'] == 'en'
    assert settings['puretone']['response_window_s'] == 3.5


def test_save_and_reload_fills_new_keys(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({'language': 'he', 'puretone': {'pair_pause_s': 4.0}}), encoding='utf-8')
    settings = load_settings(str(path))
    assert settings['language'] == 'he'
    assert settings['puretone']['pair_pause_s'] == 4.0
    assert settings['puretone']['isi_min_s'] == 1.0
    settings['last_export_dir'] = str(tmp_path)
    save_settings(settings, str(path))
    assert not (tmp_path / "settings.json.tmp").exists()
    assert load_settings(str(path))['last_export_dir'] == str(tmp_path)


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding='utf-8')
    assert load_settings(str(path))['language'] == 'en'


def test_env_overrides(monkeypatch):
    monkeypatch.setenv('HEARCHECK_LANGUAGE', 'he')
    monkeypatch.setenv('HEARCHECK_LOG_LEVEL', 'debug')
    settings = apply_env_overrides(load_settings())
    assert settings['language'] == 'he'
    assert settings['log_level'] == 'DEBUG'


def test_unknown_env_language_ignored(monkeypatch):
    monkeypatch.setenv('HEARCHECK_LANGUAGE', 'klingon')
    assert apply_env_overrides(load_settings())['language'] == 'en'


def test_configs_from_settings():
    settings = load_settings()
    settings['puretone']['response_window_s'] = 5.0
    settings['game']['feedback_pause_s'] = 0.5
    settings['speech']['speak_delay_s'] = 2.0
    settings['speech']['answer_grace_s'] = 0.5
    assert puretone_config(settings).response_window_s == 5.0
    assert game_config(settings).feedback_pause_s == 0.5
    assert speech_config(settings).speak_delay_s == 2.0
    assert speech_config(settings).answer_grace_s == 0.5


def test_data_dir_override(tmp_path, monkeypatch):
    monkeypatch.setenv('HEARCHECK_DATA_DIR', str(tmp_path / "data"))
    assert get_app_data_dir() == str(tmp_path / "data")
    assert path_settings() == str(tmp_path / "data" / "settings.json")


def test_version_file(tmp_path):
    from hearcheck.version import __version__, read_version

    assert __version__ == "0.3.0"
    good = tmp_path / "VERSION"
    good.write_text("1.2.3\n", encoding='utf-8')
    assert read_version(good) == "1.2.3"
    good.write_text("one.two", encoding='utf-8')
    with pytest.raises(ValueError):
        read_version(good)
