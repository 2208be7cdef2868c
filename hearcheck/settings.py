from __future__ import annotations
from typing import Any, Dict, Optional
import json
import logging
import os

from .paths import path_settings
from .screening.game import GameConfig
from .screening.puretone import PureToneConfig
from .screening.speech import SpeechConfig
from .screening.words import LANGUAGES

logger = logging.getLogger("hearcheck.settings")


def _default_settings() -> Dict[str, Any]:
    return {
        'language': 'en',
        'output_device': None,
        'log_level': 'INFO',
        'last_export_dir': None,
        'puretone': {
            'tone_duration_s': 1.5,
            'response_window_s': 3.5,
            'isi_min_s': 1.0,
            'isi_max_s': 3.0,
            'pair_pause_s': 2.0,
        },
        'game': {
            'feedback_pause_s': 1.5,
        },
        'speech': {
            'speak_delay_s': 1.0,
            'answer_pause_s': 0.8,
            'answer_grace_s': 0.3,
            'speech_timeout_s': 4.0,
        },
    }


def _merge_defaults(data: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in _default_settings().items():
        if isinstance(value, dict):
            section = data.setdefault(key, {})
            if not isinstance(section, dict):
                section = data[key] = {}
            for sub_key, sub_value in value.items():
                section.setdefault(sub_key, sub_value)
        else:
            data.setdefault(key, value)
    return data


def apply_env_overrides(settings: Dict[str, Any]) -> Dict[str, Any]:
    """HEARCHECK_LANGUAGE / HEARCHECK_LOG_LEVEL win over the saved file (see .env)."""
    language = os.environ.get('HEARCHECK_LANGUAGE')
    if language:
        if language in LANGUAGES:
            settings['language'] = language
        else:
            logger.warning("Ignoring HEARCHECK_LANGUAGE=%r: supported %s", language, ", ".join(LANGUAGES))
    level = os.environ.get('HEARCHECK_LOG_LEVEL')
    if level:
        settings['log_level'] = level.upper()
    return settings


def load_settings(path: Optional[str] = None) -> Dict[str, Any]:
    path = path or path_settings()
    if not os.path.exists(path):
        return _default_settings()
    try:
        with open(path, 'r', encoding='utf-8') as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Unreadable settings file %s (%s), using defaults", path, exc)
        return _default_settings()
    if not isinstance(data, dict):
        return _default_settings()
    return _merge_defaults(data)


def save_settings(settings: Dict[str, Any], path: Optional[str] = None) -> None:
    path = path or path_settings()
    tmp_path = f"{path}.tmp"
    with open(tmp_path, 'w', encoding='utf-8') as handle:
        json.dump(settings, handle, ensure_ascii=False, indent=2)
    os.replace(tmp_path, path)


def puretone_config(settings: Dict[str, Any]) -> PureToneConfig:
    section = settings.get('puretone', {})
    return PureToneConfig(
        tone_duration_s=float(section.get('tone_duration_s', 1.5)),
        response_window_s=float(section.get('response_window_s', 3.5)),
        isi_min_s=float(section.get('isi_min_s', 1.0)),
        isi_max_s=float(section.get('isi_max_s', 3.0)),
        pair_pause_s=float(section.get('pair_pause_s', 2.0)),
    )


def game_config(settings: Dict[str, Any]) -> GameConfig:
    section = settings.get('game', {})
    return GameConfig(feedback_pause_s=float(section.get('feedback_pause_s', 1.5)))


def speech_config(settings: Dict[str, Any]) -> SpeechConfig:
    section = settings.get('speech', {})
    return SpeechConfig(
        speak_delay_s=float(section.get('speak_delay_s', 1.0)),
        answer_pause_s=float(section.get('answer_pause_s', 0.8)),
        answer_grace_s=float(section.get('answer_grace_s', 0.3)),
        speech_timeout_s=float(section.get('speech_timeout_s', 4.0)),
    )
