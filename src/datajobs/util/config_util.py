import yaml
from pathlib import Path
import logging
import os
import re
from typing import Any, Dict, Optional
from datajobs.util import logger_util

logger = logger_util.get_logger(__name__)

# This file lives in src/datajobs/util, so the project root is four levels up.
_default_project_root = Path(__file__).parent.parent.parent.parent
PROJECT_ROOT = Path(os.getenv("DATAJOBS_PROJECT_ROOT", str(_default_project_root)))
CONFIG_PATH = Path(os.getenv("DATAJOBS_CONFIG", str(PROJECT_ROOT / "config.yaml")))

# ${VAR} or $VAR; unset variables expand to ''.
_ENV_REF = re.compile(r'\$\{?([a-zA-Z_][a-zA-Z0-9_]*)\}?')


def _expand_env(item: Any) -> Any:
    if isinstance(item, dict):
        return {k: _expand_env(v) for k, v in item.items()}
    if isinstance(item, list):
        return [_expand_env(i) for i in item]
    if isinstance(item, str):
        return _ENV_REF.sub(lambda match: os.getenv(match.group(1), ''), item)
    return item


class AppConfig:
    """
    Process-wide settings read from config.yaml. Every setting has a default,
    so the engine also runs without the file.
    """
    _instance = None
    _config = None

    def __new__(cls, *args, **kwargs):
        if not cls._instance:
            cls._instance = super(AppConfig, cls).__new__(cls)
        return cls._instance

    def __init__(self, config_path=CONFIG_PATH):
        if self._config is None:
            self.load(config_path)

    def load(self, config_path) -> None:
        path = Path(config_path)
        if not path.exists():
            logger.warning(f"Configuration file not found at: {path}. Using defaults.")
            self._config = {}
            return
        with open(path, 'r', encoding='utf-8') as f:
            self._config = _expand_env(yaml.safe_load(f) or {})

    def get(self, key: str, default=None):
        """Looks up a dotted key such as 'scheduler.cron_poll_seconds'."""
        value = self._config
        for part in key.split('.'):
            if not isinstance(value, dict):
                return default
            value = value.get(part)
        return default if value is None else value

    @property
    def database_url(self) -> str:
        db_url = self.get('core.database_url', 'sqlite:///jobs.sqlite')
        if db_url.startswith('sqlite:///'):
            db_file = db_url[len('sqlite:///'):]
            if db_file and not os.path.isabs(db_file) and db_file != ':memory:':
                abs_db_path = (PROJECT_ROOT / db_file).resolve()
                return f'sqlite:///{abs_db_path}'
        return db_url

    @property
    def cron_poll_seconds(self) -> int:
        return int(self.get('scheduler.cron_poll_seconds', 10))

    @property
    def date_check_seconds(self) -> int:
        return int(self.get('scheduler.date_check_seconds', 60))

    @property
    def recovery_limit(self) -> int:
        return int(self.get('scheduler.recovery_limit', 1000))

    @property
    def seed_file(self) -> Optional[Path]:
        seed = self.get('scheduler.seed_file')
        if not seed:
            return None
        path = Path(seed)
        return path if path.is_absolute() else PROJECT_ROOT / path

    @property
    def preview_rows(self) -> int:
        return int(self.get('workflow.preview_rows', 10))

    @property
    def backend_urls(self) -> Dict[str, str]:
        """Connection URLs per query backend name; blank URLs are dropped."""
        backends = self.get('backends', {}) or {}
        urls = {}
        for name, settings in backends.items():
            url = (settings or {}).get('url')
            if url:
                urls[name] = url
        return urls

    @property
    def log_file(self) -> Optional[str]:
        return self.get('logging.file', 'log/datajobs.log')

    @property
    def console_log_level(self) -> int:
        level = self.get('logging.console_level', 'INFO')
        if isinstance(level, int):
            return level
        return logging.getLevelName(str(level).upper())

# Create a single, importable instance for the application to use.
config = AppConfig()
