"""
Duplicate detection: import-time scoring, portfolio scans and media hashing
"""
from .detection import DuplicateDetectionConfig, DuplicateDetectionService, DEFAULT_CONFIG, load_config
from .global_scan import (
    GlobalDuplicateMatch, detect_global_duplicates, scan_user_portfolio, save_duplicate_groups,
    get_pending_groups, merge_duplicate_properties, dismiss_duplicate_group,
    generate_property_fingerprint, check_for_merged_duplicate, cleanup_exact_duplicates
)

__all__ = [
    'DuplicateDetectionConfig', 'DuplicateDetectionService', 'DEFAULT_CONFIG', 'load_config',
    'GlobalDuplicateMatch', 'detect_global_duplicates', 'scan_user_portfolio', 'save_duplicate_groups',
    'get_pending_groups', 'merge_duplicate_properties', 'dismiss_duplicate_group',
    'generate_property_fingerprint', 'check_for_merged_duplicate', 'cleanup_exact_duplicates',
]
