from .codec import (
    decode_outcome,
    decode_request,
    decode_value,
    encode_outcome,
    encode_request,
    encode_value,
)
from .schema import EXECUTE_METHOD, SERVICE_NAME

__all__ = [
    "EXECUTE_METHOD",
    "SERVICE_NAME",
    "decode_outcome",
    "decode_request",
    "decode_value",
    "encode_outcome",
    "encode_request",
    "encode_value",
]
