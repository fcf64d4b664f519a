"""
Конфигурация проекта:
- `config.settings` — настройки процесса из переменных окружения (.env).
- `config.client_config` — конфигурация клиента из clients/<client>/config.
"""

from .settings import get_config
from .client_config import ClientConfig, load_client_config, list_clients

__all__ = ['get_config', 'ClientConfig', 'load_client_config', 'list_clients']
