#!/usr/bin/env python3
"""
Leasy - Command Line Interface

Usage:
    leasy init-db
    leasy import listings.csv --user owner@example.com
    leasy check-duplicates listings.csv --user owner@example.com
    leasy scan --user owner@example.com --save
    leasy cleanup --user owner@example.com
    leasy export properties.xlsx --user owner@example.com
    leasy template leasy_properties_template.xlsx
    leasy cleanup-errors --days 30
"""
import argparse
import json
import sys
from pathlib import Path

from .app import create_app, configure_logging
from .database import db, User, Property
from .config import settings
from .duplicates import (
    DuplicateDetectionService, load_config, scan_user_portfolio, save_duplicate_groups,
    cleanup_exact_duplicates
)
from .errors import LeasyError
from .imports import process_rows_with_fallback
from .models import PropertyForDetection, DuplicateStatus
from .services.error_logging import cleanup_old_errors
from .utils.bulk_operations import BulkImportManager, read_csv_rows, read_excel_rows, read_json_rows
from .utils.exports import EXPORT_FORMATS, export_listings, import_template


def print_json(data, indent=2):
    """Pretty print JSON data"""
    print(json.dumps(data, indent=indent, ensure_ascii=False, default=str))


def progress_callback(current: int, total: int, status: str):
    """Progress callback for bulk operations"""
    percentage = (current / total * 100) if total > 0 else 0
    bar_length = 30
    filled = int(bar_length * current / total) if total > 0 else 0
    bar = '█' * filled + '░' * (bar_length - filled)
    print(f"\r[{bar}] {percentage:.1f}% ({current}/{total}) - {status}", end='', flush=True)
    if current >= total:
        print()


def get_user(email: str) -> User:
    user = User.query.filter_by(email=(email or settings.ADMIN_EMAIL).lower()).first()
    if not user:
        print(f"Error: User not found: {email}")
        sys.exit(1)
    return user


def require_file(path: str) -> Path:
    file_path = Path(path)
    if not file_path.exists():
        print(f"Error: File not found: {file_path}")
        sys.exit(1)
    if file_path.suffix.lower() not in ('.csv', '.xlsx', '.json'):
        print(f"Error: Unsupported file type: {file_path.suffix}")
        print("Supported formats: .json, .csv, .xlsx")
        sys.exit(1)
    return file_path


def cmd_init_db(args):
    """Create tables and the default admin user"""
    db.create_all()
    print(f"Database ready: {db.engine.url}")


def cmd_import(args):
    """Import listings from file (JSON, CSV or Excel)"""
    file_path = require_file(args.file)
    user = get_user(args.user)
    manager = BulkImportManager(user, allow_duplicates=args.allow_duplicates)

    print(f"Processing file: {file_path}")
    print("-" * 40)

    if file_path.suffix.lower() == '.json':
        result = manager.import_from_json(str(file_path), progress_callback=progress_callback)
    elif file_path.suffix.lower() == '.xlsx':
        result = manager.import_from_excel(str(file_path), progress_callback=progress_callback)
    else:
        result = manager.import_from_csv(str(file_path), delimiter=args.delimiter,
                                         progress_callback=progress_callback)

    print("\n" + "=" * 40)
    print("IMPORT RESULTS")
    print("=" * 40)
    print(f"Total:      {result.total}")
    print(f"Successful: {result.successful}")
    print(f"Failed:     {result.failed}")
    print(f"Duplicates: {result.skipped_duplicates}")

    if result.errors:
        print("\nFailed rows:")
        for error in result.errors:
            print(f"  - {error['reference']}: {error['error']}")

    if args.output:
        manager.export_results_to_file(result, args.output)


def cmd_check_duplicates(args):
    """Report which rows of a file would be rejected as duplicates, without importing"""
    file_path = require_file(args.file)
    user = get_user(args.user)
    detector = DuplicateDetectionService(load_config())

    if file_path.suffix.lower() == '.json':
        rows, mapping = read_json_rows(str(file_path)), {}
    else:
        if file_path.suffix.lower() == '.xlsx':
            headers, rows = read_excel_rows(str(file_path))
        else:
            headers, rows = read_csv_rows(str(file_path), args.delimiter)
        mapping = BulkImportManager(user, detector).resolve_mapping(headers)

    processing = process_rows_with_fallback(rows, mapping)
    source = file_path.suffix.lower().lstrip('.')
    flagged = 0
    for row in processing.valid_rows:
        row.setdefault('source', source)
        matches = detector.find_duplicates_for_user(PropertyForDetection.from_dict(row), user.id)
        if not matches:
            continue
        flagged += 1
        best = matches[0]
        marker = 'DUPLICATE' if best.status == DuplicateStatus.DUPLICATE else 'POTENTIAL'
        print(f"[{marker}] {row.get('title')} -> #{best.existing_property.id} "
              f"{best.existing_property.title} ({best.match_score}%)")
        print(f"    {best.suggestion}")

    print("-" * 40)
    print(f"Rows checked: {len(processing.valid_rows)}, flagged: {flagged}, "
          f"invalid: {len(processing.skipped_rows)}")


def cmd_scan(args):
    """Scan a user's listings for duplicate pairs"""
    user = get_user(args.user)
    matches = scan_user_portfolio(user.id)

    for match in matches:
        print(f"{match.confidence_score:6.2f}%  #{match.property1['id']} {match.property1['title']}"
              f"  <->  #{match.property2['id']} {match.property2['title']}")
        for reason in match.reasons:
            print(f"          {reason}")

    print(f"\n{len(matches)} duplicate pair(s) found")
    if args.save and matches:
        groups = save_duplicate_groups(matches, user.id)
        print(f"{len(groups)} group(s) queued for review")


def cmd_cleanup(args):
    """Delete exact duplicates, keeping the oldest listing"""
    user_id = get_user(args.user).id if args.user else None
    result = cleanup_exact_duplicates(user_id)
    print_json(result)


def _output_format(path: Path) -> str:
    fmt = path.suffix.lower().lstrip('.')
    if fmt not in EXPORT_FORMATS:
        print(f"Error: Unsupported export format: {path.suffix}")
        print("Supported formats: .xlsx, .csv")
        sys.exit(1)
    return fmt


def cmd_export(args):
    """Write a user's listings to an Excel or CSV file"""
    output = Path(args.file)
    fmt = _output_format(output)
    query = Property.query
    if args.user:
        query = query.filter_by(user_id=get_user(args.user).id)
    properties = query.order_by(Property.created_at, Property.id).all()

    output.write_bytes(export_listings(properties, fmt))
    print(f"Exported {len(properties)} listing(s) to {output}")


def cmd_template(args):
    """Write the import template with one sample listing"""
    output = Path(args.file)
    output.write_bytes(import_template(_output_format(output)))
    print(f"Template written to {output}")


def cmd_cleanup_errors(args):
    """Delete old entries from the error log"""
    deleted = cleanup_old_errors(args.days)
    print(f"Removed {deleted} error log entr{'y' if deleted == 1 else 'ies'}")


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='Leasy listing tools',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import listings from CSV, skipping duplicates
  leasy import listings.csv --user owner@example.com

  # Import even when listings look like duplicates
  leasy import listings.json --user owner@example.com --allow-duplicates

  # Scan a portfolio and queue matches for admin review
  leasy scan --user owner@example.com --save
        """
    )

    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    subparsers.add_parser('init-db', help='Create database tables')

    import_parser = subparsers.add_parser('import', help='Import listings from file')
    import_parser.add_argument('file', help='JSON, CSV or Excel (.xlsx) file path')
    import_parser.add_argument('--user', '-u', help='Owner email (default: admin)')
    import_parser.add_argument('--allow-duplicates', action='store_true', help='Import rows matching existing listings')
    import_parser.add_argument('--delimiter', default=',', help='CSV delimiter character')
    import_parser.add_argument('--output', '-o', help='Output file for results')

    check_parser = subparsers.add_parser('check-duplicates', help='Check a file against existing listings')
    check_parser.add_argument('file', help='JSON, CSV or Excel (.xlsx) file path')
    check_parser.add_argument('--user', '-u', required=True, help='Owner email')
    check_parser.add_argument('--delimiter', default=',', help='CSV delimiter character')

    scan_parser = subparsers.add_parser('scan', help='Find duplicate pairs in a portfolio')
    scan_parser.add_argument('--user', '-u', required=True, help='Owner email')
    scan_parser.add_argument('--save', action='store_true', help='Queue matches for review')

    cleanup_parser = subparsers.add_parser('cleanup', help='Delete exact duplicates')
    cleanup_parser.add_argument('--user', '-u', help='Limit to one owner (default: everyone)')

    export_parser = subparsers.add_parser('export', help='Export listings to Excel or CSV')
    export_parser.add_argument('file', help='Output .xlsx or .csv path')
    export_parser.add_argument('--user', '-u', help='Limit to one owner (default: everyone)')

    template_parser = subparsers.add_parser('template', help='Write an import template')
    template_parser.add_argument('file', help='Output .xlsx or .csv path')

    errors_parser = subparsers.add_parser('cleanup-errors', help='Delete old error log entries')
    errors_parser.add_argument('--days', type=int, help='Keep entries newer than this (default: ERROR_LOG_RETENTION_DAYS)')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    app = create_app()
    if args.debug:
        configure_logging('DEBUG')

    commands = {
        'init-db': cmd_init_db,
        'import': cmd_import,
        'check-duplicates': cmd_check_duplicates,
        'scan': cmd_scan,
        'cleanup': cmd_cleanup,
        'export': cmd_export,
        'template': cmd_template,
        'cleanup-errors': cmd_cleanup_errors,
    }

    with app.app_context():
        try:
            commands[args.command](args)
        except LeasyError as e:
            print(f"\nError: {e.message}")
            if e.payload:
                print_json(e.payload)
            sys.exit(1)


if __name__ == '__main__':
    main()
