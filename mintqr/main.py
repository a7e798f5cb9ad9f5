import logging
from contextlib import asynccontextmanager
from io import BytesIO
from pathlib import Path
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response, StreamingResponse
from fastapi.exceptions import RequestValidationError
from fastapi.templating import Jinja2Templates
from openpyxl import Workbook
from pydantic import BaseModel
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from .claims import ClaimCoordinator, ClaimError, utcnow
from .config import Settings
from .db import init_db, make_engine
from .minter import Minter, MinterError, build_minter
from .qr import build_claim_url, render_qr_png
from .security import check_admin_token, gen_code
from .store import RedemptionStore, StoreUnavailable

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent   # mintqr/
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

MAX_CREATE = 200
MAX_LIST = 500
DEFAULT_LIST = 50

CLAIM_ERROR_STATUS = {
    ClaimError.INVALID_INPUT: 400,
    ClaimError.NOT_FOUND: 404,
    ClaimError.ALREADY_USED: 409,
    ClaimError.CONFLICT: 409,
}

router = APIRouter()


# fields are loose on purpose: bad values fall back to defaults instead of a 422
class CreateQRsRequest(BaseModel):
    count: Any = None


class ClaimRequest(BaseModel):
    code: Any = ""
    walletAddress: Any = ""


def as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def as_text(value: Any) -> str:
    if not value or isinstance(value, (dict, list)):
        return ""
    return str(value)


def clamp(value: Any, low: int, high: int, default: int) -> int:
    value = as_int(value)
    if not value:
        value = default
    return max(low, min(high, value))


def error_response(status_code: int, kind: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "error": kind, "message": message},
    )


# ---------- dependencies (owned by create_app, kept on app.state) ----------

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> RedemptionStore:
    return request.app.state.store


def get_coordinator(request: Request) -> ClaimCoordinator:
    return request.app.state.coordinator


def require_admin(
    settings: Settings = Depends(get_settings),
    x_admin_token: Optional[str] = Header(default=None),
) -> None:
    if not check_admin_token(settings.admin_token, x_admin_token):
        raise HTTPException(status_code=401, detail="Admin token required")


def claim_url_for(request: Request, settings: Settings, code: str) -> str:
    base = settings.claim_url or str(request.url_for("claim_page"))
    return build_claim_url(base, code)


# ---------- routes ----------

@router.get("/", response_class=PlainTextResponse)
def index():
    return "Engine Claim backend running"


@router.get("/env-check")
def env_check(settings: Settings = Depends(get_settings)):
    return {"ok": True, **settings.readiness()}


@router.post("/api/qrs/create", dependencies=[Depends(require_admin)])
def create_qrs(
    request: Request,
    payload: Optional[CreateQRsRequest] = None,
    store: RedemptionStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    count = clamp(payload.count if payload else None, 1, MAX_CREATE, 1)
    now = utcnow()

    ids = []
    while len(ids) < count:
        code = gen_code()
        # a collision just means we draw again
        if store.create(code, now):
            ids.append(code)

    logger.info("created %d codes", len(ids))
    return {
        "ok": True,
        "claimUrl": claim_url_for(request, settings, ids[0]),
        "code": ids[0],
        "created": len(ids),
        "ids": ids,
    }


@router.get("/api/qrs", dependencies=[Depends(require_admin)])
def list_qrs(limit: Optional[str] = None, store: RedemptionStore = Depends(get_store)):
    limit = clamp(limit, 1, MAX_LIST, DEFAULT_LIST)
    return {"ok": True, "items": [row.to_item() for row in store.list(limit)]}


@router.get("/api/qrs/export", dependencies=[Depends(require_admin)])
def export_qrs(store: RedemptionStore = Depends(get_store)):
    wb = Workbook()
    ws = wb.active
    ws.title = "codes"
    ws.append(["id", "created_at", "used_at", "used_by", "transaction_id"])
    for row in store.all():
        ws.append([row.id, row.created_at, row.used_at, row.used_by, row.transaction_id])

    bio = BytesIO()
    wb.save(bio)
    bio.seek(0)

    filename = f"codes_export_{utcnow().strftime('%Y%m%d_%H%M%S')}.xlsx"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return StreamingResponse(
        bio,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers=headers,
    )


@router.get("/qr/{code_id}.png")
def qr_png(
    code_id: str,
    request: Request,
    store: RedemptionStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    if store.get(code_id) is None:
        raise HTTPException(status_code=404, detail="Not found")

    png = render_qr_png(claim_url_for(request, settings, code_id))
    return Response(content=png, media_type="image/png", headers={"Cache-Control": "no-store"})


@router.get("/claim", response_class=HTMLResponse, name="claim_page")
def claim_page(request: Request, code: str = Query(default="", alias="id")):
    return templates.TemplateResponse(request, "claim.html", {"code": code})


@router.post("/api/claim")
async def claim(
    payload: Optional[ClaimRequest] = None,
    settings: Settings = Depends(get_settings),
    coordinator: ClaimCoordinator = Depends(get_coordinator),
):
    if not settings.minter_configured:
        return error_response(503, "minter_not_configured", "Minting is not configured")

    payload = payload or ClaimRequest()
    result = await coordinator.claim(as_text(payload.code), as_text(payload.walletAddress))
    if not result.ok:
        return error_response(CLAIM_ERROR_STATUS[result.error], result.error.value, result.error.message)
    return {"ok": True, "transactionId": result.transaction_ref}


# ---------- infrastructure errors: details to logs, generic text to clients ----------

async def on_store_unavailable(request: Request, exc: StoreUnavailable):
    logger.error("store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return error_response(503, "store_unavailable", "Storage temporarily unavailable")


async def on_minter_error(request: Request, exc: MinterError):
    logger.error("mint failed on %s: %s", request.url.path, exc)
    return error_response(502, "minter_failure", "Mint submission failed")


HTTP_ERROR_KINDS = {401: "unauthorized", 404: "not_found"}


async def on_http_error(request: Request, exc: StarletteHTTPException):
    kind = HTTP_ERROR_KINDS.get(exc.status_code, "http_error")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    response = error_response(exc.status_code, kind, message)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def on_validation_error(request: Request, exc: RequestValidationError):
    logger.info("rejected body on %s: %s", request.url.path, exc.errors())
    return error_response(400, "invalid_input", "Malformed request")


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    minter: Optional[Minter] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    engine = engine or make_engine(settings.database_url)
    minter = minter or build_minter(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        init_db(engine)
        if not settings.minter_configured:
            logger.warning("minter not configured, /api/claim will answer 503")
        yield
        engine.dispose()

    app = FastAPI(title="QR Mint Claim", lifespan=lifespan)
    store = RedemptionStore(engine)
    app.state.settings = settings
    app.state.store = store
    app.state.coordinator = ClaimCoordinator(store, minter)

    app.include_router(router)
    app.add_exception_handler(StoreUnavailable, on_store_unavailable)
    app.add_exception_handler(MinterError, on_minter_error)
    app.add_exception_handler(StarletteHTTPException, on_http_error)
    app.add_exception_handler(RequestValidationError, on_validation_error)
    return app


# uvicorn mintqr.main:app
app = create_app()
