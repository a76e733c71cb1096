# app/deps.py
from typing import Any, Optional, Type, TypeVar

from fastapi import Depends
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import ValidationError
from app.ledger import CommissionLedger

M = TypeVar("M", bound=BaseModel)


def get_ledger(db: Session = Depends(get_db)) -> CommissionLedger:
    """
    Un ledger per richiesta, legato alla sessione DB della richiesta.
    """
    return CommissionLedger(db)


def pydantic_message(exc: PydanticValidationError) -> str:
    # "amount: Field required; client_id: Input should be a valid integer"
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def parse_payload(model: Type[M], body: dict[str, Any]) -> M:
    """
    Valida il body di una POST "ad azione" con lo schema dell'azione.
    Errori pydantic → ValidationError (400), come il resto del ledger.
    """
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError(pydantic_message(e))


def ok(data: Any = None, message: Optional[str] = None, **extra: Any) -> dict[str, Any]:
    # Envelope comune: { success, data?, message?, ... }
    out: dict[str, Any] = {"success": True}
    if data is not None:
        out["data"] = data
    if message:
        out["message"] = message
    out.update(extra)
    return out
