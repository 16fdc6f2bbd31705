"""
FastAPI application serving the salary slip directory and WhatsApp chatbot.
Provides REST API endpoints for employees, slips, admin sync and the chat webhook.
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager, suppress

import uvicorn
from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import FileResponse, Response
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from slipdesk.chatbot import get_engine
from slipdesk.config import settings
from slipdesk.directory_service import get_directory_service
from slipdesk.errors import (
    InvalidInputError,
    NotFoundError,
    SlipDeskError,
    StorageError,
    TransportError,
)
from slipdesk.gateway import get_gateway
from slipdesk.models import Employee, EmployeeRecord, InboundMessage
from slipdesk.phone import validate_mobile

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Pydantic models for API
class EmployeeOut(BaseModel):
    empid: str
    name: str | None = None
    mobileNo: str | None = None


class SalarySlipOut(BaseModel):
    fileName: str
    absolutePath: str


class EmployeeDetailResponse(BaseModel):
    employee: EmployeeOut
    salarySlip: SalarySlipOut | None = None


class EmployeeListItem(BaseModel):
    employee: EmployeeOut
    salarySlipAvailable: bool


class EmployeeListResponse(BaseModel):
    total: int
    limit: int
    offset: int
    items: list[EmployeeListItem]


class EmpidRequest(BaseModel):
    """Request body carrying an employee id."""

    model_config = ConfigDict(json_schema_extra={"example": {"empid": "E001"}})

    empid: str | None = Field(None, description="Employee ID")


class MobileUpdateRequest(BaseModel):
    """Accepts either `mobileNo` or `mobile`."""

    model_config = ConfigDict(json_schema_extra={"example": {"mobileNo": "9825533053"}})

    mobile: str | int | None = Field(
        None, validation_alias=AliasChoices("mobileNo", "mobile"), description="Mobile number"
    )


class MobileUpdateResponse(BaseModel):
    empid: str
    name: str
    mobile: str | None
    salarySlipAvailable: bool
    message: str


class InboundMessageRequest(BaseModel):
    """Inbound chat message forwarded by the WhatsApp bridge."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {"sender": "919825533053@s.whatsapp.net", "text": "sobha", "fromMe": False}
        },
    )

    sender: str = Field(..., description="Transport address of the sender")
    text: str = Field("", description="Message text")
    from_me: bool = Field(False, alias="fromMe")


def _employee_out(employee: Employee) -> EmployeeOut:
    return EmployeeOut(empid=employee.id, name=employee.name, mobileNo=employee.mobile)


def _detail(record: EmployeeRecord) -> EmployeeDetailResponse:
    slip = None
    if record.slip is not None:
        slip = SalarySlipOut(
            fileName=record.slip.file_name, absolutePath=str(record.slip.absolute_path)
        )
    return EmployeeDetailResponse(employee=_employee_out(record.employee), salarySlip=slip)


def _http_error(e: Exception) -> HTTPException:
    """Map service errors onto HTTP responses."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, InvalidInputError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, TransportError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    if isinstance(e, StorageError):
        logger.error(f"Storage failure: {e}")
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Storage error"
        )
    logger.error(f"Unexpected error: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An error occurred processing your request. Please try again.",
    )


def _required_empid(value: str | None) -> str:
    empid = (value or "").strip()
    if not empid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="empid is required in the request body",
        )
    return empid


async def _sweep_conversations(interval_seconds: float):
    """Periodically drop stale chatbot conversations."""
    engine = get_engine()
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await asyncio.to_thread(engine.sweep_expired)
            if removed:
                logger.info(f"Conversation sweep removed {removed} entries")
        except Exception as e:
            logger.error(f"Conversation sweep failed: {e}", exc_info=True)


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info("Starting Salary Slip Service")
    logger.info(f"Environment: {settings.environment}")

    directory = get_directory_service()
    try:
        directory.initialize()
    except StorageError as e:
        logger.error(f"Failed to initialize directory: {e}")
        raise

    get_engine()
    sweeper = asyncio.create_task(
        _sweep_conversations(settings.conversation_sweep_interval_seconds)
    )

    yield

    # Shutdown
    logger.info("Shutting down Salary Slip Service")
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    directory.shutdown()
    get_gateway().close()


# Create FastAPI app
app = FastAPI(
    title="Salary Slip Service",
    description="Employee directory with WhatsApp salary slip delivery",
    version="1.0.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and duration of every request."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        f"{request.method} {request.url.path} status={response.status_code} "
        f"duration_ms={duration_ms:.2f}"
    )
    return response


# API Endpoints


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {"message": "Salary Slip Service", "version": "1.0.0", "docs": "/docs"}


@app.get("/health", tags=["Health"])
def health_check():
    """Service status with directory counts and transport state."""
    directory = get_directory_service()
    return {
        "status": "ok",
        "environment": settings.environment,
        "employees": len(directory.cache),
        "salary_slips": len(directory.slips),
        "whatsapp": get_gateway().connection_state.value,
    }


@app.get("/metrics", tags=["Monitoring"])
def metrics():
    directory = get_directory_service()
    return {
        "active_conversations": get_engine().active_conversations,
        "employees": len(directory.cache),
        "salary_slips": len(directory.slips),
        "snapshot_persist_pending": directory.cache.persist_pending,
        "environment": settings.environment,
    }


@app.get("/employees", response_model=EmployeeListResponse, tags=["Employees"])
def list_employees(
    limit: int = Query(100, ge=1, le=1000, description="limit must be between 1 and 1000"),
    offset: int = Query(0, ge=0, description="offset must be zero or positive"),
):
    try:
        records = get_directory_service().list_employees()
    except SlipDeskError as e:
        raise _http_error(e) from e

    items = [
        EmployeeListItem(
            employee=_employee_out(listing.employee), salarySlipAvailable=listing.slip_available
        )
        for listing in records[offset : offset + limit]
    ]
    return EmployeeListResponse(total=len(records), limit=limit, offset=offset, items=items)


@app.get("/employees/{empid}", response_model=EmployeeDetailResponse, tags=["Employees"])
def get_employee(empid: str):
    try:
        return _detail(get_directory_service().get_employee(empid))
    except SlipDeskError as e:
        raise _http_error(e) from e


@app.get("/employees/{empid}/salary-slip", tags=["Salary Slips"])
def download_salary_slip(empid: str):
    """Stream the employee's salary slip PDF."""
    try:
        record = get_directory_service().get_employee(empid)
    except SlipDeskError as e:
        raise _http_error(e) from e

    if record.slip is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Salary slip not available for this employee",
        )
    return FileResponse(
        record.slip.absolute_path, media_type="application/pdf", filename=record.slip.file_name
    )


@app.post("/salary-slip", tags=["Salary Slips"])
def salary_slip_content(request: EmpidRequest):
    """Return the salary slip PDF inline for the given empid."""
    empid = _required_empid(request.empid)
    try:
        record, content = get_directory_service().get_slip_content(empid)
    except SlipDeskError as e:
        raise _http_error(e) from e

    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{record.slip.file_name}"'},
    )


@app.post("/employees/{empid}/mobile", response_model=MobileUpdateResponse, tags=["Employees"])
def update_mobile(empid: str, request: MobileUpdateRequest):
    """
    Register or change an employee's mobile number.

    Only the local store is updated; use /employees/sync-to-excel to push
    the change to the workbook.
    """
    try:
        digits = validate_mobile(request.mobile)
        record = get_directory_service().update_mobile(empid, digits)
    except SlipDeskError as e:
        raise _http_error(e) from e

    return MobileUpdateResponse(
        empid=record.employee.id,
        name=record.employee.name or "",
        mobile=record.employee.mobile,
        salarySlipAvailable=record.slip_available,
        message="mobile number updated",
    )


@app.post("/send-salary-slip", tags=["Salary Slips"])
def send_salary_slip(request: EmpidRequest):
    """Deliver the salary slip to the employee's registered mobile over WhatsApp."""
    empid = _required_empid(request.empid)
    directory = get_directory_service()

    try:
        record = directory.get_employee(empid)
        if not record.employee.mobile:
            raise InvalidInputError("Employee does not have a mobile number")
        if record.slip is None:
            raise NotFoundError("Salary slip not available for this employee")

        content = directory.read_slip(record.slip)
        caption = (
            f"Dear {record.employee.name or empid},\n\n"
            "Please find attached your salary slip.\n\n"
            f"Regards,\n{settings.hr_signature}"
        )
        get_gateway().send_document(
            directory.matcher.to_address(record.employee.mobile),
            content,
            record.slip.file_name,
            caption,
        )
    except SlipDeskError as e:
        raise _http_error(e) from e

    logger.info(f"Salary slip sent via API: employee={empid}")
    return {
        "success": True,
        "empid": empid,
        "name": record.employee.name or "",
        "mobile": record.employee.mobile,
        "message": "Salary slip sent via WhatsApp",
    }


@app.post("/employees/sync-to-excel", tags=["Admin"])
def sync_to_excel():
    """Overwrite the employee workbook with the local store."""
    try:
        result = get_directory_service().export_to_authoritative()
    except SlipDeskError as e:
        raise _http_error(e) from e

    return {
        "success": True,
        "count": result.count,
        "path": str(result.path),
        "message": "Excel updated from local store",
    }


@app.post("/employees/reload-from-excel", tags=["Admin"])
def reload_from_excel():
    """Replace the local store with the workbook contents, discarding unsynced edits."""
    try:
        result = get_directory_service().reload_from_authoritative()
    except SlipDeskError as e:
        raise _http_error(e) from e

    return {
        "success": True,
        "imported": result.imported,
        "message": "Local store reloaded from Excel",
    }


@app.post("/salary-slips/reload", tags=["Admin"])
def reload_salary_slips():
    try:
        count = get_directory_service().reload_slips()
    except SlipDeskError as e:
        raise _http_error(e) from e

    return {"success": True, "salary_slips": count}


@app.get("/whatsapp/status", tags=["WhatsApp"])
def whatsapp_status():
    return get_gateway().status()


@app.post("/whatsapp/webhook", status_code=status.HTTP_202_ACCEPTED, tags=["WhatsApp"])
def whatsapp_webhook(request: InboundMessageRequest, background_tasks: BackgroundTasks):
    """
    Accept an inbound chat message from the bridge.

    The message is handled after the response is sent so a slow delivery
    never holds up the bridge.
    """
    message = InboundMessage(sender=request.sender, text=request.text, from_me=request.from_me)
    background_tasks.add_task(get_engine().handle_message, message)
    return {"accepted": True}


@app.post("/reset-conversation/{contact_id}", tags=["WhatsApp"])
def reset_conversation(contact_id: str):
    """Forget any in-progress chatbot conversation with a contact."""
    removed = get_engine().reset_conversation(contact_id)
    return {"message": f"Conversation reset for {contact_id}", "removed": removed}


if __name__ == "__main__":
    uvicorn.run(
        "slipdesk.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 3000)),
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
