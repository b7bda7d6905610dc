import json
from typing import Any
from urllib import request
from urllib.error import HTTPError, URLError

from common.exceptions import GenerationError, LLMConnectionError, LLMResponseError


def post_json(url: str, payload: dict, timeout: int = 120) -> dict[str, Any]:
    data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    req = request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except HTTPError as exc:
        body = exc.read().decode("utf-8") if exc.fp else ""
        raise GenerationError(
            f"Request to {url} failed: {body}".strip(),
            status_code=exc.code,
            original_error=exc,
        ) from exc
    except (URLError, TimeoutError) as exc:
        reason = getattr(exc, "reason", exc)
        raise LLMConnectionError(
            f"Cannot reach {url}: {reason}", original_error=exc
        ) from exc

    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LLMResponseError(f"Non-JSON body from {url}", raw) from exc
