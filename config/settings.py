# config/settings.py
"""
Конфигурация для разных окружений (development/production/testing)
Использует переменные окружения для настройки
"""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

# Загружаем .env из корня проекта (если есть)
_env_path = BASE_DIR / '.env'
if _env_path.exists():
    load_dotenv(_env_path)


def _env_int(name, default):
    raw = os.getenv(name)
    if raw is None or str(raw).strip() == '':
        return default
    return int(raw)


def _env_float(name, default):
    raw = os.getenv(name)
    if raw is None or str(raw).strip() == '':
        return default
    return float(raw)


class Config:
    """Базовая конфигурация"""

    BASE_DIR = BASE_DIR
    CLIENTS_DIR = Path(os.getenv('CLIENTS_DIR', str(BASE_DIR / 'clients')))

    # LLM (chat-completions совместимый endpoint)
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
    LLM_URL = os.getenv('LLM_URL', 'https://api.openai.com/v1/chat/completions')
    LLM_MODEL = os.getenv('LLM_MODEL', 'gpt-4o-mini')
    LLM_TEMPERATURE = _env_float('LLM_TEMPERATURE', 0.3)
    LLM_TIMEOUT = _env_int('LLM_TIMEOUT', 90)

    # Пакетная классификация
    ENRICH_BATCH_SIZE = _env_int('ENRICH_BATCH_SIZE', 50)
    ENRICH_BATCH_DELAY = _env_float('ENRICH_BATCH_DELAY', 1.0)

    # Логирование
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', str(BASE_DIR / 'logs' / 'call_metrics.log'))

    DEBUG = False
    TESTING = False


class DevelopmentConfig(Config):
    """Конфигурация для разработки"""
    DEBUG = True


class ProductionConfig(Config):
    """Конфигурация для продакшн"""
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'WARNING')


class TestingConfig(Config):
    """Конфигурация для тестов: без пауз между пакетами"""
    TESTING = True
    ENRICH_BATCH_DELAY = 0.0


# Выбор конфигурации на основе переменной окружения
config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Получить конфигурацию на основе APP_ENV"""
    env = (os.getenv('APP_ENV') or 'development').lower()
    if env == 'prod':
        env = 'production'
    return config_map.get(env, DevelopmentConfig)
