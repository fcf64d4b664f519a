# call_analyzer/reports/__init__.py

from .day_over_day import build_day_over_day_report
from .excel_export import export_report_to_excel
from .leads import export_leads_to_csv, extract_high_priority_leads
