from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from .errors import Layer, MalformedRequest
from .validation import HEX_PATTERN


class LoginRequest(BaseModel):
    model_config = ConfigDict(strict=True)

    username: str
    timestamp: int
    signature: str


class ClientRequest(BaseModel):
    model_config = ConfigDict(strict=True)

    meta: Optional[Dict[str, Any]] = Field(default_factory=dict)
    protected_payload: Dict[str, Any]
    user_signature: str

    @field_validator("user_signature")
    @classmethod
    def user_signature_is_hex(cls, value: str) -> str:
        if not HEX_PATTERN.fullmatch(value):
            raise ValueError("must be valid hexadecimal")
        return value


class TransferData(BaseModel):
    model_config = ConfigDict(strict=True)

    receiver: str
    amount: int = Field(gt=0)
    timestamp: Optional[int] = None


def parse_model(model, body: Any, layer: Optional[Layer] = None):
    """Validate a raw body against a model, mapping failures to MalformedRequest."""
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        raise MalformedRequest(f"{model.__name__}: {e.errors()}", layer) from e
