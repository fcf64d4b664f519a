"""
Исключения модуля классификации.

Исключения зарезервированы для дефектов (конфигурация, внешний сервис,
целостность хранилища). Бизнес-исходы звонка (спам, сброс и т.п.)
исключениями не являются.
"""


class CallMetricsError(Exception):
    """Базовое исключение проекта"""


class ConfigurationError(CallMetricsError):
    """Отсутствуют ключи доступа или повреждена конфигурация клиента"""


class LLMRequestError(CallMetricsError):
    """Сетевая ошибка, ошибка авторизации или лимита при запросе к LLM"""


class StoreError(CallMetricsError):
    """Файл хранилища классификаций повреждён и не может быть дополнен"""
