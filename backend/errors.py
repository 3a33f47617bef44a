from __future__ import annotations

from typing import Optional


class AcquisitionError(Exception):
    """Base de los errores de adquisición (TLE y clima espacial)."""

    kind = "acquisition"

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source

    def __str__(self) -> str:
        msg = super().__str__()
        if self.source:
            return f"{self.kind} [{self.source}]: {msg}"
        return f"{self.kind}: {msg}"


class NetworkError(AcquisitionError):
    """Connect/timeout/non-2xx."""

    kind = "network"


class AuthError(AcquisitionError):
    kind = "auth"


class ValidationError(AcquisitionError):
    """El payload no cumple el predicado del tier."""

    kind = "validation"


class ParseError(AcquisitionError):
    kind = "parse"
