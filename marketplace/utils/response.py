from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from typing import Any, Optional, Dict, Type


def dump(schema: Type[BaseModel], obj: Any):
    """Validate ORM objects into ``schema`` and return plain dicts.

    Dicts keep Decimal values numeric once they pass through ``success``.
    """
    if isinstance(obj, (list, tuple)):
        return [schema.model_validate(item).model_dump() for item in obj]
    return schema.model_validate(obj).model_dump()


def success(
    data: Optional[Any] = None,
    message: str = "Success",
    meta: Optional[Dict] = None,
    **extra: Any,
):
    response = {
        "success": True,
        "message": message,
        "data": data,
        "errors": None,
    }

    if meta is not None:
        response["meta"] = meta

    response.update(extra)

    # Ensure SQLAlchemy models, datetimes, Decimals, etc. are JSON-serializable.
    return jsonable_encoder(response)

