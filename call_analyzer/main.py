# call_analyzer/main.py

import argparse
import logging
import sys
from pathlib import Path

if __package__ in (None, ""):
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config.client_config import list_clients, load_client_config
from config.settings import get_config
from classification_module.enrichment_runner import MODE_LLM, MODE_RULES, run_enrichment
from classification_module.exceptions import CallMetricsError, ConfigurationError
from call_analyzer.reports import (
    build_day_over_day_report,
    export_leads_to_csv,
    export_report_to_excel,
    extract_high_priority_leads,
)
from call_analyzer.reports.leads import leads_to_dataframe
from call_analyzer.reports.metrics import resolve_timezone

logger = logging.getLogger(__name__)


def setup_logging(settings=None):
    settings = settings or get_config()
    log_file = Path(settings.LOG_FILE)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(name)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding='utf-8')
        ]
    )


def _int_list(value):
    try:
        return tuple(int(part) for part in value.split(',') if part.strip())
    except ValueError:
        raise argparse.ArgumentTypeError(f'ожидался список чисел через запятую: {value}')


def build_parser():
    parser = argparse.ArgumentParser(description='Классификация звонков и отчёты по маршрутизации')
    subparsers = parser.add_subparsers(dest='command', required=True)

    enrich = subparsers.add_parser('enrich', help='Классифицировать новые звонки клиента')
    enrich.add_argument('--client', required=True, help='Имя папки клиента в clients/')
    enrich.add_argument('--batch-size', type=int, default=None, help='Звонков в одной пачке')
    enrich.add_argument('--delay', type=float, default=None, help='Пауза между пачками, сек')
    enrich.add_argument('--mode', choices=[MODE_LLM, MODE_RULES], default=MODE_LLM,
                        help='llm — через модель, rules — только правила')

    report = subparsers.add_parser('report', help='Отчёт «день к дню» в Excel')
    report.add_argument('--client', required=True, help='Имя папки клиента в clients/')
    report.add_argument('--date', default=None, help='День отчёта YYYY-MM-DD (по умолчанию последний)')
    report.add_argument('--rolling-days', type=_int_list, default=(7, 30), help='Скользящие окна в днях, например 7,30')
    report.add_argument('--rolling-months', type=_int_list, default=(1, 3), help='Скользящие окна в месяцах, например 1,3')
    report.add_argument('--output', default=None, help='Путь к xlsx (по умолчанию data/reports клиента)')
    report.add_argument('--leads', default=None, help='Путь к CSV с лидами')

    subparsers.add_parser('clients', help='Список клиентов')
    return parser


def run_enrich_command(args, settings):
    client_config = load_client_config(args.client)
    summary = run_enrichment(
        client_config,
        settings,
        mode=args.mode,
        batch_size=args.batch_size,
        delay=args.delay,
    )
    logger.info(
        '[ENRICH] %s: обработано %d из %d, по категориям: %s',
        client_config.name, summary['processed'], summary['to_enrich'], dict(summary['categories']),
    )
    return 0


def run_report_command(args, settings):
    client_config = load_client_config(args.client)
    report = build_day_over_day_report(
        client_config,
        target_date=args.date,
        rolling_days=args.rolling_days,
        rolling_months=args.rolling_months,
    )
    if report.target_date is None:
        logger.warning('[REPORT] Нет данных для отчёта клиента %s', client_config.name)
        return 0

    leads = extract_high_priority_leads(report.processed_calls, resolve_timezone(client_config.timezone))
    output = args.output or client_config.paths['reports_dir'] / f'day_over_day_{report.target_date}.xlsx'
    targets = (client_config.report or {}).get('targets') or {}
    export_report_to_excel(
        report,
        output,
        routing_rate_target=targets.get('routingRate', 50),
        max_transfer_failure_rate=targets.get('maxTransferFailureRate'),
        extra_tables={'leads': leads_to_dataframe(leads)},
    )
    if args.leads:
        export_leads_to_csv(leads, args.leads)
    return 0


def run_clients_command(args, settings):
    for name in list_clients():
        print(name)
    return 0


COMMANDS = {
    'enrich': run_enrich_command,
    'report': run_report_command,
    'clients': run_clients_command,
}


def main(argv=None):
    args = build_parser().parse_args(argv)
    settings = get_config()
    setup_logging(settings)
    try:
        return COMMANDS[args.command](args, settings)
    except ConfigurationError as e:
        logger.error('[MAIN] Ошибка конфигурации: %s', e)
        return 1
    except CallMetricsError as e:
        logger.error('[MAIN] %s', e)
        return 1
    except Exception:
        logger.exception('[MAIN] Неизвестная ошибка')
        return 1


if __name__ == "__main__":
    sys.exit(main())
