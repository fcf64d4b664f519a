# call_analyzer/reports/duration_stats.py
"""Статистика длительностей: перцентили, среднее, гистограмма"""

import math

from call_analyzer.utils import round_half_up

# (подпись, нижняя граница включительно, верхняя граница не включительно)
DURATION_BUCKETS = [
    ('0-15s', 0, 15),
    ('15-30s', 15, 30),
    ('30-60s', 30, 60),
    ('60-120s', 60, 120),
    ('120s+', 120, None),
]


def percentile(values, p):
    """Перцентиль по индексу ceil(p/100 * n) - 1; пустой список → 0"""
    if not values:
        return 0
    ordered = sorted(values)
    n = len(ordered)
    index = math.ceil(p * n / 100) - 1
    index = min(max(index, 0), n - 1)
    return ordered[index]


def duration_stats(values):
    """{avg, median, p90}; среднее округляется вверх от .5"""
    if not values:
        return {'avg': 0, 'median': 0, 'p90': 0}
    return {
        'avg': round_half_up(sum(values) / len(values)),
        'median': percentile(values, 50),
        'p90': percentile(values, 90),
    }


def duration_buckets(values):
    """Число значений в каждом интервале гистограммы"""
    counts = {label: 0 for label, _, _ in DURATION_BUCKETS}
    for value in values:
        for label, low, high in DURATION_BUCKETS:
            if value >= low and (high is None or value < high):
                counts[label] += 1
                break
    return counts
