from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

META_API_ERROR = "meta_api_error"
NETWORK_ERROR = "network_error"
MISSING_CREDENTIAL = "missing_credential"
INVALID_RECIPIENT = "invalid_recipient"


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    status_code: Optional[int] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown", status_code: Optional[int] = None) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code, status_code=status_code)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
