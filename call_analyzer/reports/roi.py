# call_analyzer/reports/roi.py
"""
Стоимость ассистента против живого оператора и оценка выручки от записей.

Ставки берутся из секции pricing в report.yaml клиента:
aiCostPerMinute, humanHourlyRate, humanBenefitsMultiplier,
averageProjectValue, consultationCloseRate, bookingToVisitRate.
Доли принимаются и как 0.35, и как 35.
"""

import logging

import pandas as pd

from call_analyzer.utils import round_half_up

logger = logging.getLogger(__name__)

DEFAULT_AI_COST_PER_MINUTE = 0.79
DEFAULT_HUMAN_HOURLY_RATE = 45
DEFAULT_BENEFITS_MULTIPLIER = 1.3
DEFAULT_BOOKING_TO_VISIT_RATE = 1.0


def round_money(value):
    """До центов, половина вверх"""
    return round_half_up(value * 100) / 100


def _number(pricing, key, default=None):
    value = (pricing or {}).get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        if value is not None:
            logger.warning('pricing.%s = %r не число, используется %s', key, value, default)
        return default
    return float(value)


def _fraction(value):
    if value is None:
        return None
    return value / 100 if value > 1 else value


def compare_ai_vs_human(total_minutes, total_calls, pricing=None):
    """Стоимость минут ассистента и тех же часов работы оператора"""
    ai_rate = _number(pricing, 'aiCostPerMinute', DEFAULT_AI_COST_PER_MINUTE)
    hourly_rate = _number(pricing, 'humanHourlyRate', DEFAULT_HUMAN_HOURLY_RATE)
    multiplier = _number(pricing, 'humanBenefitsMultiplier', DEFAULT_BENEFITS_MULTIPLIER)

    total_minutes = total_minutes or 0
    total_hours = round_money(total_minutes / 60)
    ai_cost = round_money(total_minutes * ai_rate)
    loaded_rate = hourly_rate * multiplier
    human_cost = round_money(total_hours * loaded_rate)
    difference = round_money(ai_cost - human_cost)

    return {
        'total_minutes': round_money(total_minutes),
        'total_hours': total_hours,
        'ai_cost_per_minute': ai_rate,
        'ai_total_cost': ai_cost,
        'ai_cost_per_call': round_money(ai_cost / total_calls) if total_calls else 0,
        'human_hourly_rate': hourly_rate,
        'human_fully_loaded_rate': round_money(loaded_rate),
        'human_total_cost': human_cost,
        'difference': difference,
        'percent_difference': round_half_up(difference / human_cost * 100) if human_cost > 0 else 0,
        'savings': -difference if difference < 0 else 0,
        'additional_cost': difference if difference > 0 else 0,
    }


def estimate_revenue(bookings_completed, pricing=None):
    """
    Записи → визиты → проекты → выручка.

    Без averageProjectValue или consultationCloseRate оценки нет: поля
    остаются None, has_data = False.
    """
    estimate = {
        'bookings_completed': bookings_completed,
        'estimated_visits': None,
        'estimated_projects': None,
        'estimated_revenue': None,
        'has_data': False,
    }
    project_value = _number(pricing, 'averageProjectValue')
    close_rate = _fraction(_number(pricing, 'consultationCloseRate'))
    visit_rate = _fraction(_number(pricing, 'bookingToVisitRate', DEFAULT_BOOKING_TO_VISIT_RATE))
    if project_value is None or close_rate is None:
        logger.info('В pricing нет averageProjectValue или consultationCloseRate, выручка не оценивается')
        return estimate

    visits = round_half_up(bookings_completed * visit_rate)
    projects = round_half_up(visits * close_rate)
    estimate.update(
        estimated_visits=visits,
        estimated_projects=projects,
        estimated_revenue=round_half_up(projects * project_value),
        has_data=True,
    )
    return estimate


def calculate_roi(revenue, cost):
    """ROI в целых процентах; при нулевой стоимости считать не из чего"""
    revenue = revenue or 0
    if not cost:
        return {'revenue': revenue, 'cost': 0, 'profit': 0, 'roi_pct': 0, 'has_data': False}
    profit = revenue - cost
    return {
        'revenue': round_money(revenue),
        'cost': round_money(cost),
        'profit': round_money(profit),
        'roi_pct': round_half_up(profit / cost * 100),
        'has_data': revenue > 0,
    }


def build_roi_table(aggregate, pricing=None):
    """Таблица metric/value для листа ROI"""
    costs = compare_ai_vs_human(aggregate.total_minutes, aggregate.total_calls, pricing)
    revenue = estimate_revenue(aggregate.bookings_completed, pricing)
    roi = calculate_roi(revenue['estimated_revenue'], costs['ai_total_cost'])

    rows = [
        ('Total calls', aggregate.total_calls),
        ('Total minutes', costs['total_minutes']),
        ('Total hours', costs['total_hours']),
        ('AI cost per minute', costs['ai_cost_per_minute']),
        ('AI total cost', costs['ai_total_cost']),
        ('AI cost per call', costs['ai_cost_per_call']),
        ('Human fully loaded hourly rate', costs['human_fully_loaded_rate']),
        ('Human equivalent cost', costs['human_total_cost']),
        ('Cost difference', costs['difference']),
        ('Cost difference %', costs['percent_difference']),
        ('Savings', costs['savings']),
        ('Bookings completed', revenue['bookings_completed']),
        ('Estimated visits', revenue['estimated_visits']),
        ('Estimated projects', revenue['estimated_projects']),
        ('Estimated revenue', revenue['estimated_revenue']),
        ('Net profit', roi['profit'] if roi['has_data'] else None),
        ('ROI %', roi['roi_pct'] if roi['has_data'] else None),
    ]
    # object, чтобы пустые оценки остались None, а не NaN
    return pd.DataFrame(rows, columns=['metric', 'value'], dtype=object)
