import logging
import os
import re
from dataclasses import asdict
from typing import Any
from urllib.parse import quote

# load_dotenv() runs before the project imports so SUPABASE_* and CERT_* settings are visible.
from dotenv import load_dotenv
load_dotenv()

import jwt as pyjwt
from auth import decode_supabase_token, require_clinician
from certificate_content import CertificateCategory, CertificateRequest
from certificate_renderer import render_certificate
from certificate_overlay import layout_for
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Medical Certificate Renderer")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000").split(",") if o],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_PUBLIC_API_PATHS: frozenset[str] = frozenset({"/api/health"})

# RenderResult.error_code -> HTTP status
ERROR_STATUS: dict[str, int] = {
    "invalid_input": 422,
    "body_too_long": 422,
    "template_not_found": 503,
    "render_failed": 500,
}


@app.middleware("http")
async def _auth_middleware(request: Request, call_next):
    """Reject unauthenticated calls to /api/* (except public endpoints)."""
    path = request.url.path
    if (
        not path.startswith("/api/")
        or path in _PUBLIC_API_PATHS
        or request.method == "OPTIONS"
    ):
        return await call_next(request)

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return JSONResponse(
            status_code=401,
            content={"detail": "Missing or invalid Authorization header."},
        )

    token = auth_header.split(" ", 1)[1]
    try:
        decode_supabase_token(token)
    except pyjwt.ExpiredSignatureError:
        return JSONResponse(
            status_code=401,
            content={"detail": "Token has expired."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    except pyjwt.InvalidTokenError as exc:
        return JSONResponse(
            status_code=401,
            content={"detail": f"Invalid token: {exc}"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    return await call_next(request)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "message": "Request validation failed.",
            "detail": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def content_disposition(file_name: str, disposition: str = "inline") -> str:
    """Header value safe for latin-1 transport, with the exact name in filename* (RFC 6266)."""
    fallback = re.sub(r'[^\x20-\x7e]|["\\]', "_", file_name)
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name, safe='')}"


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/certificates/layout/{category}")
def get_layout(category: CertificateCategory) -> dict[str, Any]:
    return {"category": category.value, "layout": asdict(layout_for(category))}


@app.post("/api/certificates/render")
def render(
    payload: CertificateRequest,
    current_user: dict = Depends(require_clinician),
) -> Response:
    result = render_certificate(payload)
    if not result.success:
        raise HTTPException(
            status_code=ERROR_STATUS.get(result.error_code or "", 500),
            detail={
                "code": result.error_code,
                "message": result.error,
                "stage": result.failed_stage.value if result.failed_stage else None,
            },
        )

    logger.info(
        "Certificate %s rendered for user %s",
        payload.certificate_ref,
        current_user.get("sub"),
    )
    return Response(
        content=result.pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": content_disposition(f"{payload.certificate_ref}.pdf"),
            "X-Certificate-SHA256": result.sha256 or "",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app_server:app", host=os.environ.get("HOST", "127.0.0.1"), port=int(os.environ.get("PORT", "8000")))
