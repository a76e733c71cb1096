# app/errors.py

from __future__ import annotations

from typing import Any, Optional


class LedgerError(Exception):
    """
    Errore base del ledger commissioni.
    Ogni sottoclasse porta con sé lo status HTTP con cui va restituita al client.
    """

    status_code: int = 500

    def __init__(self, message: str, extra: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class ValidationError(LedgerError):
    """Input mancante, malformato o fuori range (errore del chiamante)."""

    status_code = 400


class ConflictError(ValidationError):
    """Duplicato (es. email già registrata)."""

    status_code = 409


class NotFoundError(LedgerError):
    """Entità assente o non appartenente al partner indicato."""

    status_code = 404


class InvalidStateError(LedgerError):
    """Transizione di stato non permessa dallo stato corrente."""

    status_code = 409

    def __init__(self, current: str, attempted: str, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot {attempted} earning with status: {current}",
            extra={"current_status": current, "attempted": attempted},
        )
        self.current = current
        self.attempted = attempted


class StorageError(LedgerError):
    """Errore del database (potenzialmente transitorio)."""

    status_code = 500
