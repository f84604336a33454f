#!/usr/bin/env python3
"""
Temp Station Database Management Tool
Quản lý và bảo trì file SQLite từ dòng lệnh
"""

import argparse
import logging
import sys

from temp_station.app.config import Settings
from temp_station.app.db import Database
from temp_station.app.errors import TelemetryError
from temp_station.app.maintenance import MaintenanceToolkit
from temp_station.app.queries import format_local_time


def prompt_confirm(question):
    """Hỏi (y/n) trên stdin, chỉ 'y' mới là đồng ý."""
    try:
        answer = input(f"{question}\nProceed? (y/n): ")
    except EOFError:
        return False
    return answer.strip().lower() == "y"


def always_confirm(question):
    print(f"{question} (auto-confirmed)")
    return True


def show_info(toolkit):
    info = toolkit.info()
    print("=================================")
    print("Database Information")
    print("=================================")
    print(f"📁 Location: {info.path}")
    print(f"💾 Size: {info.size_human}")
    print("")
    print("Record Counts:")
    print(f"  Total Records: {info.total_records}")
    print(f"  Total Samples: {info.total_samples}")
    print(f"  Avg Samples/Record: {info.avg_samples_per_record}")
    if info.oldest and info.newest:
        print("")
        print("Date Range:")
        print(f"  Oldest: {format_local_time(info.oldest)}")
        print(f"  Newest: {format_local_time(info.newest)}")
        print(f"  Span: {info.span_days} days")
    print("")
    print("Configuration:")
    print(f"  Journal Mode: {info.journal_mode}")


def _print_aggregate(title, stats):
    print(f"{title}:")
    print(f"  Minimum: {stats.min}°C")
    print(f"  Maximum: {stats.max}°C")
    print(f"  Average: {stats.avg}°C")
    print(f"  Samples: {stats.count}")


def show_stats(toolkit):
    stats = toolkit.stats()
    print("=================================")
    print("Temperature Statistics")
    print("=================================")
    _print_aggregate("All Time", stats.all_time)
    if stats.last_24h.count > 0:
        print("")
        _print_aggregate("Last 24 Hours", stats.last_24h)


def run_cleanup(toolkit, days):
    print(f"🧹 Cleaning up data older than {days} days...")
    result = toolkit.cleanup(days)
    print(f"Cutoff date: {format_local_time(result.cutoff)}")
    if result.matched == 0:
        print("No old records to delete.")
    elif result.cancelled:
        print("Cancelled.")
    else:
        print(f"✅ Deleted {result.deleted} records")
        print("✅ Database optimized")


def run_vacuum(toolkit):
    print("🔄 Optimizing database...")
    toolkit.vacuum()
    print("✅ Database optimized")


def run_export(toolkit, path):
    print(f"📤 Exporting data to {path}...")
    count = toolkit.export(path)
    print(f"✅ Exported {count} records to {path}")


def _report_import(result):
    print(f"Found {result.found} records to import")
    if result.cancelled:
        print("Cancelled.")
    else:
        print(f"✅ Imported {result.imported} records successfully")


def run_import(toolkit, path):
    print(f"📥 Importing from {path}...")
    _report_import(toolkit.import_file(path))


def run_migrate(toolkit):
    print("🔄 Migrating from JSON to SQLite...")
    result = toolkit.migrate()
    _report_import(result.import_result)
    if result.backup_path:
        print(f"✅ JSON file backed up to: {result.backup_path}")


def build_parser():
    parser = argparse.ArgumentParser(description='Database management tool cho Temp Station')
    parser.add_argument('--db', help='Đường dẫn file SQLite (hoặc dùng TEMP_STATION_DB_PATH env var)')
    parser.add_argument('--legacy-json', help='File JSON cũ cho lệnh migrate (hoặc TEMP_STATION_LEGACY_JSON)')
    parser.add_argument('-y', '--yes', action='store_true', help='Tự động xác nhận mọi câu hỏi')
    parser.add_argument('-v', '--verbose', action='store_true', help='In log chi tiết')

    sub = parser.add_subparsers(dest='command')
    sub.add_parser('init', help='Create database schema')
    sub.add_parser('info', help='Show database information')
    sub.add_parser('stats', help='Show temperature statistics')
    cleanup = sub.add_parser('cleanup', help='Remove data older than X days (default: 30)')
    cleanup.add_argument('days', nargs='?', type=int, default=30)
    sub.add_parser('vacuum', help='Optimize database (reclaim space)')
    export = sub.add_parser('export', help='Export data to JSON file')
    export.add_argument('file', nargs='?', default='export.json')
    import_ = sub.add_parser('import', help='Import data from JSON file')
    import_.add_argument('file')
    sub.add_parser('migrate', help='Migrate from old JSON file to SQLite')
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    settings = Settings.from_env()
    overrides = {}
    if args.db:
        overrides['db_path'] = args.db
    if args.legacy_json:
        overrides['legacy_json_path'] = args.legacy_json
    if overrides:
        settings = settings.model_copy(update=overrides)

    database = Database(settings)
    toolkit = MaintenanceToolkit(
        database,
        settings,
        confirm=always_confirm if args.yes else prompt_confirm,
    )
    command = args.command or 'info'

    try:
        if command == 'init':
            toolkit.init()
            print(f"✅ Database initialized at {database.path}")
        elif command == 'info':
            show_info(toolkit)
        elif command == 'stats':
            show_stats(toolkit)
        elif command == 'cleanup':
            run_cleanup(toolkit, args.days)
        elif command == 'vacuum':
            run_vacuum(toolkit)
        elif command == 'export':
            run_export(toolkit, args.file)
        elif command == 'import':
            run_import(toolkit, args.file)
        elif command == 'migrate':
            run_migrate(toolkit)
    except TelemetryError as e:
        print(f"❌ Error: {e.message}")
        return 1
    except OSError as e:
        print(f"❌ File error: {e}")
        return 1
    finally:
        database.dispose()
    return 0


if __name__ == '__main__':
    sys.exit(main())
