from .assertion import build_assertion, decode_claims, expiry_of, is_expired
from .keys import Failed, Imported, import_private_key
from .token_service import TokenService

__all__ = [
    "Failed",
    "Imported",
    "TokenService",
    "build_assertion",
    "decode_claims",
    "expiry_of",
    "import_private_key",
    "is_expired",
]
