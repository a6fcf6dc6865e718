"""
Leasy Models Package
"""
from .property import (
    ApartmentType,
    Category,
    PropertyStatus,
    MediaType,
    DuplicateStatus,
    GroupStatus,
    PropertyForDetection,
    ExistingProperty,
    MatchReason,
    DuplicateMatch
)

__all__ = [
    'ApartmentType',
    'Category',
    'PropertyStatus',
    'MediaType',
    'DuplicateStatus',
    'GroupStatus',
    'PropertyForDetection',
    'ExistingProperty',
    'MatchReason',
    'DuplicateMatch'
]
