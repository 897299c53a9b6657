from __future__ import annotations

import json
from typing import Any

from fastapi.responses import JSONResponse


MEDIA_TYPE = "application/vnd.api+json"


class PrettyJSONResponse(JSONResponse):
    media_type = MEDIA_TYPE

    def render(self, content: Any) -> bytes:
        return json.dumps(content, ensure_ascii=False, allow_nan=False, indent=2).encode("utf-8")


class CompactJSONResponse(JSONResponse):
    media_type = MEDIA_TYPE

    def render(self, content: Any) -> bytes:
        return json.dumps(content, ensure_ascii=False, allow_nan=False, separators=(",", ":")).encode("utf-8")


def response_class(production: bool) -> type[JSONResponse]:
    """Production responses carry no insignificant whitespace."""
    return CompactJSONResponse if production else PrettyJSONResponse
