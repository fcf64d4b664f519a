# call_analyzer/reports/excel_export.py
"""Выгрузка таблиц отчёта в Excel: один лист на таблицу"""

import logging
import os
import shutil
import tempfile
from pathlib import Path

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

SHEET_TITLES = {
    'daily': 'Daily',
    'weekly': 'Weekly',
    'rolling': 'Rolling windows',
    'comparisons': 'Period comparison',
    'dow_baseline': 'Weekday baseline',
    'transfer_reasons': 'Transfer reasons',
    'not_routed_buckets': 'Not routed durations',
    'longest_not_routed': 'Longest not routed',
    'scorecard': 'Scorecard',
    'roi': 'ROI',
    'heatmap': 'Call volume heatmap',
    'peak_slots': 'Peak times',
    'leads': 'Leads',
}

HEADER_FILL = PatternFill(start_color='D3D3D3', end_color='D3D3D3', fill_type='solid')
LOW_RATE_FILL = PatternFill(start_color='FFCCCC', end_color='FFCCCC', fill_type='solid')
HIGH_RATE_FILL = PatternFill(start_color='CCFFCC', end_color='CCFFCC', fill_type='solid')
ROUTING_RATE_TARGET = 50


def _sheet_title(name):
    # в Excel не больше 31 символа в имени листа
    return SHEET_TITLES.get(name, name)[:31]


def _apply_table_layout(worksheet, df):
    """Заголовок с заливкой, тонкие границы, ширина столбцов по содержимому"""
    thin_side = Side(style='thin', color='000000')
    thin_border = Border(left=thin_side, right=thin_side, top=thin_side, bottom=thin_side)
    bold_font = Font(bold=True)
    total_columns = max(len(df.columns), 1)

    for col_idx in range(1, total_columns + 1):
        cell = worksheet.cell(row=1, column=col_idx)
        cell.fill = HEADER_FILL
        cell.font = bold_font

    for row in worksheet.iter_rows(min_row=1, max_row=len(df) + 1, min_col=1, max_col=total_columns):
        for cell in row:
            cell.border = thin_border
            if cell.column == 1:
                cell.alignment = Alignment(horizontal='left', vertical='center')
            else:
                cell.alignment = Alignment(horizontal='center', vertical='center')

    for col_idx, column in enumerate(df.columns, 1):
        max_length = len(str(column))
        for value in df[column]:
            max_length = max(max_length, len(str(value)))
        # минимум 10, максимум 50
        worksheet.column_dimensions[get_column_letter(col_idx)].width = min(max(max_length + 2, 10), 50)


def _highlight_rate(worksheet, df, column, target, higher_is_better=True):
    """Подсветка столбца процентов: зелёный, если цель выполнена, иначе красный"""
    if target is None or column not in df.columns or df.empty:
        return
    col_idx = df.columns.get_loc(column) + 1
    for row_idx, value in enumerate(df[column], 2):
        if pd.isna(value):
            continue
        met = value >= target if higher_is_better else value <= target
        worksheet.cell(row=row_idx, column=col_idx).fill = HIGH_RATE_FILL if met else LOW_RATE_FILL


def export_report_to_excel(report, output_file, routing_rate_target=ROUTING_RATE_TARGET,
                           max_transfer_failure_rate=None, extra_tables=None):
    """
    Сохраняет отчёт в xlsx через временный файл и атомарный перенос.

    report — DayOverDayReport или словарь имя → DataFrame.
    max_transfer_failure_rate включает подсветку transfer_failure_rate.
    Возвращает путь к сохранённому файлу.
    """
    tables = dict(getattr(report, 'tables', report) or {})
    if extra_tables:
        tables.update(extra_tables)
    if not tables:
        tables = {'daily': pd.DataFrame()}

    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    temp_file_path = None
    try:
        with tempfile.NamedTemporaryFile(suffix='.xlsx', dir=output_file.parent, delete=False) as temp_file:
            temp_file_path = temp_file.name

        with pd.ExcelWriter(temp_file_path, engine='openpyxl') as writer:
            for name, df in tables.items():
                sheet_name = _sheet_title(name)
                df.to_excel(writer, sheet_name=sheet_name, index=False)
                worksheet = writer.sheets[sheet_name]
                _apply_table_layout(worksheet, df)
                _highlight_rate(worksheet, df, 'routing_rate', routing_rate_target)
                _highlight_rate(worksheet, df, 'transfer_failure_rate', max_transfer_failure_rate,
                                higher_is_better=False)

        shutil.move(temp_file_path, output_file)
        temp_file_path = None
        logger.info('Отчёт сохранён: %s', output_file)
        return output_file
    finally:
        if temp_file_path and os.path.exists(temp_file_path):
            os.remove(temp_file_path)
