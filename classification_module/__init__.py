"""
Пакет модуля классификации звонков.

Каталог содержит:
- features.py — извлечение признаков из сырой записи звонка
- categories.py — таксономия исходов (варианты классификации)
- rule_classifier.py — классификация по правилам, без LLM
- classification_engine.py — классификация пачками через LLM
- prompt_builder.py — промпты из конфигурации клиента
- overrides.py — детерминированные поправки поверх ответа модели
- enrichment_store.py — дневные файлы классификаций
- enrichment_runner.py — прогон классификации по новым звонкам

Модули импортируются напрямую, например:
    from classification_module.rule_classifier import classify_call
"""
