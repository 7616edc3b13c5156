from __future__ import annotations

from pathlib import Path
from typing import Any
from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import HTMLResponse
from jinja2 import Environment, FileSystemLoader, select_autoescape

from imagegallery.core.errors import ErrorCode, normalize_error_message
from imagegallery.core.request_id import request_id_for
from imagegallery.core.time import format_display

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)
jinja_env.filters["datetime"] = format_display


def gallery_url(**params: Any) -> str:
    query = {k: v for k, v in params.items() if v is not None and v != ""}
    return "/gallery" + ("?" + urlencode(query) if query else "")


jinja_env.globals["gallery_url"] = gallery_url


def render(request: Request, name: str, *, status_code: int = 200, **ctx: Any) -> HTMLResponse:
    ctx.setdefault("title", "Image Gallery")
    ctx.setdefault("request_id", request_id_for(request))
    template = jinja_env.get_template(name)
    return HTMLResponse(template.render(**ctx), status_code=status_code)


def render_error(
    request: Request,
    *,
    code: ErrorCode,
    message: str | None,
    status_code: int,
) -> HTMLResponse:
    return render(
        request,
        "error.html",
        status_code=status_code,
        title="Error",
        status=status_code,
        code=code.value,
        message=normalize_error_message(code=code, message=message),
    )
