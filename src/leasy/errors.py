"""
Leasy exception hierarchy
"""
from typing import Any, Dict, Optional


class LeasyError(Exception):
    """Base exception for errors that map onto an API response"""
    status_code = 500

    def __init__(self, message: str, status_code: int = None, payload: Optional[Dict[str, Any]] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.payload)
        data['success'] = False
        data['error'] = self.message
        return data


class ValidationError(LeasyError):
    """Request or row data failed validation"""
    status_code = 400


class ImportFileError(LeasyError):
    """An uploaded import file could not be read"""
    status_code = 400


class PermissionDeniedError(LeasyError):
    status_code = 403


class NotFoundError(LeasyError):
    status_code = 404


class DuplicateListingError(LeasyError):
    """A new listing matches an existing one above the duplicate threshold"""
    status_code = 409
