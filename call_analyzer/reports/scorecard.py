# call_analyzer/reports/scorecard.py
"""Оценки KPI против целей из секции targets в report.yaml"""

import pandas as pd

# (название, поле MetricsAggregate, ключ в targets, чем больше, тем лучше)
SCORECARD_KPIS = [
    ('Routing rate', 'routing_rate', 'routingRate', True),
    ('Transfer failure rate', 'transfer_failure_rate', 'maxTransferFailureRate', False),
]

HIGHER_GRADES = [(100, 'A'), (90, 'A-'), (85, 'B+'), (80, 'B'), (75, 'B-'), (70, 'C+'), (65, 'C'), (60, 'C-')]
LOWER_GRADES = [(100, 'A'), (110, 'A-'), (120, 'B+'), (130, 'B')]


def calculate_grade(actual, target, higher_is_better=True):
    """Буквенная оценка по доле actual от target"""
    if target is None:
        return None
    if target == 0:
        if higher_is_better or actual <= 0:
            return 'A'
        return 'C'
    ratio = actual / target * 100
    if higher_is_better:
        for threshold, grade in HIGHER_GRADES:
            if ratio >= threshold:
                return grade
        return 'D'
    for threshold, grade in LOWER_GRADES:
        if ratio <= threshold:
            return grade
    return 'C'


def target_met(actual, target, higher_is_better=True):
    return actual >= target if higher_is_better else actual <= target


def build_scorecard(current, previous, targets):
    """
    Строка на каждый KPI, для которого задана цель.

    current и previous — MetricsAggregate текущего и прошлого периода;
    previous может быть None.
    """
    targets = targets or {}
    rows = []
    for name, attr, key, higher_is_better in SCORECARD_KPIS:
        target = targets.get(key)
        if not isinstance(target, (int, float)) or isinstance(target, bool):
            continue
        value = getattr(current, attr)
        rows.append({
            'kpi': name,
            'value': value,
            'target': target,
            'direction': 'min' if higher_is_better else 'max',
            'change': value - getattr(previous, attr) if previous is not None else None,
            'grade': calculate_grade(value, target, higher_is_better),
            'met': target_met(value, target, higher_is_better),
        })
    return pd.DataFrame(rows, columns=['kpi', 'value', 'target', 'direction', 'change', 'grade', 'met'])
