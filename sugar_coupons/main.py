import datetime
import logging
import time as _time
import uuid
from io import BytesIO
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Header, Query, UploadFile, File, Form, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import StreamingResponse

from .auth import OperatorSession, SessionProvider
from .config import settings
from .database import init_db
from .exceptions import (
    CouponError, ParseError, TransactionError, TransactionReason, FarmerLookupError, LookupReason,
    ConfirmationError, ConfirmationReason, ReportError, ReportReason, StoreError, StorePermissionError
)
from .models import (
    SeasonUploadResponse, OpenSessionResponse, AddFarmerRequest, CollectionEntry, CollectionSessionView,
    ConfirmPaymentRequest, ConfirmPaymentResponse
)
from .reports import SalesReportGenerator
from .services import (
    parse_upload, SeasonReplacementService, CollectionSession, CollectionLedger, PaymentConfirmationService
)
from .store import SeasonStore

# Logging setup
logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

init_db()

app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.DESCRIPTION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # restrict to the counter UI origin in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Collection sessions staged through the API, keyed by session id
app.state.collection_sessions = {}


STATUS_BY_REASON = {
    TransactionReason.EMPTY_ROSTER: 400,
    TransactionReason.FORBIDDEN: 403,
    TransactionReason.RESET_FAILED: 500,
    TransactionReason.INSERT_FAILED: 500,
    LookupReason.NOT_AUTHENTICATED: 401,
    LookupReason.EMPTY_KEY: 400,
    LookupReason.DUPLICATE: 409,
    LookupReason.NOT_FOUND: 404,
    ConfirmationReason.NOT_AUTHENTICATED: 401,
    ConfirmationReason.NOTHING_TO_CONFIRM: 400,
    ConfirmationReason.INVALID_PAYMENT_MODE: 400,
    ConfirmationReason.ALL_DUPLICATES: 409,
    ConfirmationReason.INSERT_FAILED: 500,
    ReportReason.INVALID_RANGE: 400,
    ReportReason.NO_DATA: 404,
}


def to_http_exception(e: Exception) -> HTTPException:
    """Map service errors to HTTP; database permission problems are always 403"""
    if isinstance(e, StorePermissionError) or isinstance(e.__cause__, StorePermissionError):
        return HTTPException(status_code=403, detail={
            "error": "StorePermissionError",
            "message": str(e.__cause__ if isinstance(e.__cause__, StorePermissionError) else e),
        })
    if isinstance(e, ParseError):
        return HTTPException(status_code=400, detail=e.to_dict())
    if isinstance(e, CouponError):
        return HTTPException(status_code=STATUS_BY_REASON.get(e.reason, 500), detail=e.to_dict())
    return HTTPException(status_code=500, detail=str(e))


# ---- dependencies ----

def get_store() -> SeasonStore:
    return SeasonStore()


def get_operator(
        x_operator: Optional[str] = Header(None),
        x_operator_role: Optional[str] = Header(None)
) -> Optional[OperatorSession]:
    """Operator identity forwarded by the auth gateway"""
    if not x_operator:
        return None
    return OperatorSession(operator=x_operator, role=x_operator_role or "operator")


def require_operator(operator: Optional[OperatorSession] = Depends(get_operator)) -> OperatorSession:
    if operator is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return operator


def get_collection_session(session_id: str, request: Request,
                           operator: OperatorSession = Depends(require_operator)) -> CollectionSession:
    session = request.app.state.collection_sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Collection session not found")
    if session.operator is None:
        request.app.state.collection_sessions.pop(session_id, None)
        raise HTTPException(status_code=404, detail="Collection session has ended")
    if session.operator.operator != operator.operator:
        raise HTTPException(status_code=403, detail="Collection session belongs to another operator")
    return session


def session_view(session: CollectionSession) -> CollectionSessionView:
    return CollectionSessionView(
        session_id=session.session_id,
        operator=session.operator.operator if session.operator else "",
        payment_mode=session.payment_mode,
        entries=session.entries,
        total_sugar=session.total_sugar,
        total_amount=session.total_amount
    )


@app.get("/health", tags=["System"])
async def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}


# ---- season upload ----

@app.post("/season/upload", response_model=SeasonUploadResponse, tags=["Season"])
async def upload_season(
        file: UploadFile = File(...),
        backup: bool = Form(False),
        operator: OperatorSession = Depends(require_operator),
        store: SeasonStore = Depends(get_store)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[Season upload] start | request ID: {request_id}")
    logger.info(f"[Season upload] params: file={file.filename}, backup={backup}, operator={operator.operator}")

    try:
        contents = await file.read()
        records = parse_upload(contents, file.filename)

        backup_path = None
        if backup:
            stamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
            backup_path = Path(settings.BACKUP_DIR) / f"sales_backup_{stamp}.xlsx"

        service = SeasonReplacementService(store)
        inserted = service.replace_season(records, operator, backup_path=backup_path)
        elapsed = round(_time.time() - start_time, 2)
        logger.info(f"[Season upload] done | request ID: {request_id} | elapsed: {elapsed}s | rows: {inserted}")
        return {
            "success": True,
            "message": f"{inserted} records uploaded successfully.",
            "inserted": inserted,
            "request_id": request_id
        }
    except (ParseError, TransactionError) as e:
        elapsed = round(_time.time() - start_time, 2)
        logger.warning(f"[Season upload] failed | request ID: {request_id} | elapsed: {elapsed}s | error: {e.message}")
        raise to_http_exception(e)
    except Exception as e:
        elapsed = round(_time.time() - start_time, 2)
        logger.error(f"[Season upload] failed | request ID: {request_id} | elapsed: {elapsed}s | error: {str(e)}",
                     exc_info=True)
        raise to_http_exception(e)


@app.post("/season/backup", tags=["Season"])
async def download_sales_backup(
        operator: OperatorSession = Depends(require_operator),
        store: SeasonStore = Depends(get_store)
):
    """Current sales history as a workbook, for the operator to keep before uploading a new season"""
    try:
        content = SalesReportGenerator(store).backup_workbook()
    except StoreError as e:
        logger.error(f"[Sales backup] failed: {str(e)}")
        raise to_http_exception(e)
    return StreamingResponse(
        BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=sales_backup.xlsx"}
    )


# ---- collection ----

@app.post("/collection/sessions", response_model=OpenSessionResponse, tags=["Collection"])
async def open_collection_session(
        request: Request,
        operator: OperatorSession = Depends(require_operator),
        store: SeasonStore = Depends(get_store)
):
    session = CollectionLedger(store).open_session(SessionProvider(operator))
    request.app.state.collection_sessions[session.session_id] = session
    logger.info(f"[Collection] session {session.session_id} opened by {operator.operator}")
    return {"session_id": session.session_id, "operator": operator.operator}


@app.get("/collection/sessions/{session_id}", response_model=CollectionSessionView, tags=["Collection"])
async def view_collection_session(session: CollectionSession = Depends(get_collection_session)):
    return session_view(session)


@app.delete("/collection/sessions/{session_id}", tags=["Collection"])
async def close_collection_session(request: Request, session: CollectionSession = Depends(get_collection_session)):
    """Operator is done at the counter; staged entries are discarded"""
    request.app.state.collection_sessions.pop(session.session_id, None)
    operator = session.operator.operator
    session.end()
    logger.info(f"[Collection] session {session.session_id} closed by {operator}")
    return {"success": True, "session_id": session.session_id}


@app.post("/collection/sessions/{session_id}/farmers", response_model=CollectionEntry, tags=["Collection"])
async def add_farmer(
        body: AddFarmerRequest,
        session: CollectionSession = Depends(get_collection_session),
        store: SeasonStore = Depends(get_store)
):
    try:
        return CollectionLedger(store).add_farmer(body.lookup, session)
    except FarmerLookupError as e:
        logger.info(f"[Collection] lookup '{body.lookup}' rejected: {e.reason.name}")
        raise to_http_exception(e)
    except StoreError as e:
        logger.error(f"[Collection] lookup '{body.lookup}' failed: {str(e)}", exc_info=True)
        raise to_http_exception(e)


@app.delete("/collection/sessions/{session_id}/farmers/{ryot_number}", response_model=CollectionSessionView,
            tags=["Collection"])
async def remove_farmer(ryot_number: str, session: CollectionSession = Depends(get_collection_session)):
    if not session.remove_entry(ryot_number):
        raise HTTPException(status_code=404, detail=f"Ryot {ryot_number} is not in this session")
    return session_view(session)


@app.post("/collection/sessions/{session_id}/confirm", response_model=ConfirmPaymentResponse, tags=["Collection"])
async def confirm_payment(
        body: ConfirmPaymentRequest,
        session: CollectionSession = Depends(get_collection_session),
        store: SeasonStore = Depends(get_store)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[Payment] start | request ID: {request_id} | session: {session.session_id} | "
                f"new entries: {len(session.new_entries)} | mode: {body.payment_mode}")
    try:
        result = PaymentConfirmationService(store).confirm_payment(session, body.payment_mode)
    except ConfirmationError as e:
        elapsed = round(_time.time() - start_time, 2)
        logger.warning(f"[Payment] failed | request ID: {request_id} | elapsed: {elapsed}s | reason: {e.reason.name}")
        raise to_http_exception(e)

    elapsed = round(_time.time() - start_time, 2)
    logger.info(f"[Payment] done | request ID: {request_id} | elapsed: {elapsed}s | committed: {result.committed_count}")
    message = "Payment Recorded"
    if result.lost_race:
        message = f"Payment Recorded; already collected elsewhere, re-check: {', '.join(result.lost_race)}"
    return {"success": True, "message": message, "data": result, "request_id": request_id}


# ---- reports ----

@app.get("/reports/sales", tags=["Reports"])
async def sales_report(
        from_date: datetime.date = Query(..., description="First day, inclusive"),
        to_date: datetime.date = Query(..., description="Last day, inclusive"),
        operator: OperatorSession = Depends(require_operator),
        store: SeasonStore = Depends(get_store)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[Sales report] start | request ID: {request_id} | range: {from_date} ~ {to_date}")
    try:
        content = SalesReportGenerator(store).export_range(from_date, to_date)
    except (ReportError, StoreError) as e:
        elapsed = round(_time.time() - start_time, 2)
        logger.warning(f"[Sales report] failed | request ID: {request_id} | elapsed: {elapsed}s | error: {str(e)}")
        raise to_http_exception(e)

    elapsed = round(_time.time() - start_time, 2)
    file_size_kb = round(len(content) / 1024, 2)
    logger.info(f"[Sales report] done | request ID: {request_id} | elapsed: {elapsed}s | size: {file_size_kb}KB")
    return StreamingResponse(
        BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": "attachment; filename=Ryot_Sugar_Coupon_Statement.xlsx",
            "X-Request-ID": request_id
        }
    )
