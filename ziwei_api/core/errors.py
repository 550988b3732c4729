# ziwei_api/core/errors.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Union

from ziwei_api.core.constants import ERROR_HTTP_STATUS, ErrorCode


class ChartError(Exception):
    """Classified failure carrying a machine-readable code and a human message."""

    def __init__(self, code: ErrorCode, message: str, *, detail: Optional[str] = None):
        self.code = ErrorCode(code)
        self.message = message
        self.detail = detail
        super().__init__(f"{self.code.value}: {message}")

    @property
    def http_status(self) -> int:
        return ERROR_HTTP_STATUS[self.code]

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"status": "error", "code": self.code.value, "error": self.message}
        if self.detail is not None:
            out["detail"] = self.detail
        return out


class ValidationError(ChartError, ValueError):
    """Structured validator error (has .errors(), pydantic-style)."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        loc: Union[str, Sequence[str], None] = None,
        missing: Optional[List[str]] = None,
    ):
        super().__init__(code, message)
        if loc is None:
            loc_list: List[str] = []
        elif isinstance(loc, str):
            loc_list = [loc]
        else:
            loc_list = list(loc)
        self.missing = list(missing) if missing else []
        self._details = [{"loc": loc_list, "msg": message, "type": f"value_error.{self.code.value.lower()}"}]

    def errors(self) -> List[Dict[str, Any]]:
        return list(self._details)

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["details"] = self.errors()
        if self.missing:
            out["missing"] = list(self.missing)
        return out
