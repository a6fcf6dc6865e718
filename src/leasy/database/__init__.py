"""
Database module
"""
from .models import (
    db, User, Property, PropertyMedia, PropertyFee, DuplicateGroup, DuplicateGroupProperty,
    DuplicateDetectionLog, MergedPropertyTracking, DuplicateFalsePositive, PropertyMediaHash,
    DetectionSetting, FieldMappingMemory, ErrorLog, SystemMeta
)

__all__ = [
    'db', 'User', 'Property', 'PropertyMedia', 'PropertyFee', 'DuplicateGroup', 'DuplicateGroupProperty',
    'DuplicateDetectionLog', 'MergedPropertyTracking', 'DuplicateFalsePositive', 'PropertyMediaHash',
    'DetectionSetting', 'FieldMappingMemory', 'ErrorLog', 'SystemMeta'
]
