"""Google API integration services.

Provides service-account authentication and cached API clients used by the
spreadsheet sync gateway.
"""

from src.polytrade.services.google.auth import SHEETS_SCOPES, GoogleAuthManager

__all__ = [
    "GoogleAuthManager",
    "SHEETS_SCOPES",
]
