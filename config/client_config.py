# config/client_config.py
"""
Загрузка конфигурации клиента из папки clients/<client>/config.

Файлы client.yaml (обязателен), prompts.yaml и report.yaml (опциональны).
Допускаются расширения .yml и .json: JSON читается тем же yaml.safe_load.
"""

import logging
from pathlib import Path

import yaml

from classification_module.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_EXTENSIONS = ('.yaml', '.yml', '.json')

DEFAULT_TIMEZONE = 'America/New_York'
DEFAULT_BUSINESS_HOURS = {'start': 8, 'end': 17, 'days': [1, 2, 3, 4, 5]}


class ClientConfig:
    """Конфигурация одного клиента и вычисленные пути к его данным"""

    def __init__(self, name, client, prompts=None, report=None, client_dir=None):
        self.name = name
        self.client = client or {}
        self.prompts = prompts or {}
        self.report = report or {}
        self.client_dir = Path(client_dir) if client_dir else None
        self.paths = self._build_paths(self.client_dir) if self.client_dir else {}

    @staticmethod
    def _build_paths(client_dir):
        data_dir = client_dir / 'data'
        return {
            'client_dir': client_dir,
            'data_dir': data_dir,
            'raw_dir': data_dir / 'raw',
            'enriched_dir': data_dir / 'enriched',
            'reports_dir': data_dir / 'reports',
            'logs_dir': data_dir / 'logs',
        }

    @property
    def display_name(self):
        return self.client.get('name') or self.name

    @property
    def assistant_name(self):
        return self.client.get('aiAssistantName') or 'AI assistant'

    @property
    def timezone(self):
        return self.client.get('timezone') or DEFAULT_TIMEZONE

    @property
    def business_hours(self):
        return self.client.get('businessHours') or DEFAULT_BUSINESS_HOURS

    def ensure_directories(self):
        """Создаёт папки данных клиента, если их ещё нет"""
        for key, path in self.paths.items():
            if key == 'client_dir':
                continue
            path.mkdir(parents=True, exist_ok=True)


def _find_config_file(config_dir, stem):
    for ext in CONFIG_EXTENSIONS:
        candidate = config_dir / f'{stem}{ext}'
        if candidate.exists():
            return candidate
    return None


def _load_mapping(file_path):
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f'Не удалось прочитать файл конфигурации {file_path}: {e}') from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f'Файл конфигурации {file_path} должен содержать объект, а не {type(data).__name__}')
    return data


def load_client_config(client_name, base_dir=None):
    """
    Загружает конфигурацию клиента.

    base_dir — корневая папка clients (по умолчанию Config.CLIENTS_DIR).
    Любая ошибка конфигурации фатальна: ConfigurationError.
    """
    if not client_name:
        raise ConfigurationError('Не указано имя клиента')

    if base_dir is None:
        from config.settings import get_config
        base_dir = get_config().CLIENTS_DIR

    client_dir = Path(base_dir) / client_name
    if not client_dir.is_dir():
        raise ConfigurationError(f'Папка клиента не найдена: {client_dir}')

    config_dir = client_dir / 'config'
    client_file = _find_config_file(config_dir, 'client')
    if client_file is None:
        raise ConfigurationError(f'Не найден client.yaml в {config_dir}')

    client = _load_mapping(client_file)
    prompts_file = _find_config_file(config_dir, 'prompts')
    report_file = _find_config_file(config_dir, 'report')
    prompts = _load_mapping(prompts_file) if prompts_file else {}
    report = _load_mapping(report_file) if report_file else {}

    config = ClientConfig(client_name, client, prompts, report, client_dir)
    config.ensure_directories()
    logger.info('Загружена конфигурация клиента %s (%s)', client_name, config.display_name)
    return config


def list_clients(base_dir=None):
    """Список доступных клиентов (папок в clients/)"""
    if base_dir is None:
        from config.settings import get_config
        base_dir = get_config().CLIENTS_DIR
    base_dir = Path(base_dir)
    if not base_dir.exists():
        return []
    return sorted(p.name for p in base_dir.iterdir() if p.is_dir())
