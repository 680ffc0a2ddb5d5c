"""
Consent backend - FastAPI Application
Accounts, consent lifecycle, notifications and consent pack purchases
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from starlette.concurrency import run_in_threadpool

from .accounts import AccountInfo, AccountService, AuthResult
from .config import BackendSettings, get_settings
from .consent import ConsentEngine, ConsentView
from .constants import ErrorCodes, Pagination, SERVICE_NAME, SERVICE_VERSION
from .crypto.encrypt import EncryptionGateway
from .exceptions import (
    AuthenticationError,
    ConsentBackendError,
    EmailAlreadyRegisteredError,
    InsufficientCreditError,
    InvalidTransitionError,
    NotFoundError,
    PartnerNotFoundError,
    PaymentProviderUnavailableError,
    TransientFailureError,
    UnauthorizedError,
    ValidationError,
)
from .ledger import Ledger
from .notifications import NotificationRecord, NotificationSink
from .payments import PaymentProvider, PaymentSheet, PurchaseService, WebhookOutcome
from .storage import Database

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@dataclass
class BackendServices:
    """Components wired together at startup"""
    database: Database
    ledger: Ledger
    encryption: EncryptionGateway
    notifications: NotificationSink
    consents: ConsentEngine
    accounts: AccountService
    purchases: PurchaseService


def build_services(settings: BackendSettings,
                   payment_provider: Optional[PaymentProvider] = None,
                   bcrypt_rounds: int = 12) -> BackendServices:
    """Wire every component from explicit settings"""
    if payment_provider is None:
        logger.warning("No payment provider configured, pack purchases are disabled")

    database = Database(settings.database_url, lock_timeout_ms=settings.lock_timeout_ms,
                        echo=settings.debug_mode)
    database.create_all()

    ledger = Ledger(database)
    encryption = EncryptionGateway(settings.aes_secret_key)
    notifications = NotificationSink(database)

    return BackendServices(
        database=database,
        ledger=ledger,
        encryption=encryption,
        notifications=notifications,
        consents=ConsentEngine(database, ledger, encryption, notifications),
        accounts=AccountService(
            database,
            ledger,
            jwt_secret=settings.jwt_secret,
            jwt_algorithm=settings.jwt_algorithm,
            jwt_expiry_minutes=settings.jwt_expiry_minutes,
            bcrypt_rounds=bcrypt_rounds,
        ),
        purchases=PurchaseService(
            database,
            ledger,
            provider=payment_provider,
            currency=settings.currency,
            publishable_key=settings.payment_publishable_key,
        ),
    )


# =============================================================================
# REQUEST MODELS
# =============================================================================

class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    photo_url: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class ConsentContent(BaseModel):
    """Consent content; any extra fields are kept and encrypted with it"""
    model_config = ConfigDict(extra="allow")

    message: str


class ConsentCreateRequest(BaseModel):
    partner_email: EmailStr
    consent_data: ConsentContent


class MarkReadRequest(BaseModel):
    notification_ids: List[int] = Field(default_factory=list)


class PackPaymentRequest(BaseModel):
    quantity: int = Field(..., gt=0)


class ConsentActionResponse(BaseModel):
    message: str
    consent: ConsentView


# =============================================================================
# ERROR MAPPING
# =============================================================================

_STATUS_BY_ERROR = {
    ValidationError: 400,
    PartnerNotFoundError: 400,
    InsufficientCreditError: 400,
    AuthenticationError: 401,
    UnauthorizedError: 403,
    NotFoundError: 404,
    InvalidTransitionError: 409,
    EmailAlreadyRegisteredError: 409,
    TransientFailureError: 503,
    PaymentProviderUnavailableError: 503,
}


def status_code_for(exc: ConsentBackendError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[error_type]
    return 500


async def backend_error_handler(request: Request, exc: ConsentBackendError) -> JSONResponse:
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log("Request failed", path=request.url.path, error=exc.error_code, status_code=status_code)
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Request validation failed", path=request.url.path)
    return JSONResponse(
        status_code=400,
        content={"detail": {
            "error": ErrorCodes.VALIDATION_ERROR,
            "message": "Validation failed",
            "details": {"errors": jsonable_encoder(exc.errors())},
        }},
    )


# =============================================================================
# DEPENDENCIES
# =============================================================================

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> BackendServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Backend services not available")
    return services


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: BackendServices = Depends(get_services),
) -> int:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Token missing")
    return services.accounts.resolve_principal(credentials.credentials)


# =============================================================================
# APPLICATION
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting consent backend", version=SERVICE_VERSION)

    # Services injected before startup (tests, embedding) are kept as they are
    if getattr(app.state, "services", None) is None:
        settings = get_settings()
        logging.basicConfig(level=settings.log_level.upper())
        app.state.services = build_services(settings)
        logger.info("Backend services initialized")

    yield

    logger.info("Shutting down consent backend")
    app.state.services.database.dispose()


def create_app(services: Optional[BackendServices] = None) -> FastAPI:
    app = FastAPI(
        title="Consent Backend",
        description="Bilateral consents with credit ledger, biometric confirmation and notifications",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ConsentBackendError, backend_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    _register_routes(app)
    return app


def _payments_ready(request: Request) -> bool:
    services = getattr(request.app.state, "services", None)
    return services is not None and services.purchases.provider is not None


def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    async def health_check(request: Request) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "services_ready": getattr(request.app.state, "services", None) is not None,
            "payments_ready": _payments_ready(request),
        }

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @app.post("/api/auth/signup", response_model=AuthResult, status_code=201)
    def signup(body: SignupRequest, services: BackendServices = Depends(get_services)):
        date_of_birth = datetime.combine(body.date_of_birth, time()) if body.date_of_birth else None
        return services.accounts.signup(
            body.email,
            body.password,
            first_name=body.first_name,
            last_name=body.last_name,
            date_of_birth=date_of_birth,
            photo_url=body.photo_url,
        )

    @app.post("/api/auth/login", response_model=AuthResult)
    def login(body: LoginRequest, services: BackendServices = Depends(get_services)):
        return services.accounts.authenticate(body.email, body.password)

    @app.get("/api/user/info", response_model=AccountInfo)
    def user_info(user_id: int = Depends(get_current_user_id),
                  services: BackendServices = Depends(get_services)):
        return services.accounts.get_profile(user_id)

    # -------------------------------------------------------------------------
    # Consents
    # -------------------------------------------------------------------------

    @app.post("/api/consent", status_code=201)
    def create_consent(body: ConsentCreateRequest,
                       user_id: int = Depends(get_current_user_id),
                       services: BackendServices = Depends(get_services)) -> Dict[str, Any]:
        consent_id = services.consents.create(
            user_id, body.partner_email, body.consent_data.model_dump()
        )
        return {"message": "Consent created", "consent_id": consent_id}

    @app.get("/api/consent/history")
    def consent_history(skip: int = Query(Pagination.DEFAULT_SKIP, ge=0),
                        take: int = Query(Pagination.DEFAULT_TAKE, ge=1, le=Pagination.MAX_TAKE),
                        status: str = Query("ALL"),
                        user_id: int = Depends(get_current_user_id),
                        services: BackendServices = Depends(get_services)) -> Dict[str, Any]:
        consents = services.consents.list_history(user_id, status=status, skip=skip, take=take)
        return {"consents": jsonable_encoder(consents)}

    @app.get("/api/consent/{consent_id}", response_model=ConsentView)
    def get_consent(consent_id: int,
                    user_id: int = Depends(get_current_user_id),
                    services: BackendServices = Depends(get_services)):
        return services.consents.get_consent(consent_id, user_id)

    @app.get("/api/consent/{consent_id}/payload")
    def consent_payload(consent_id: int,
                        user_id: int = Depends(get_current_user_id),
                        services: BackendServices = Depends(get_services)) -> Dict[str, Any]:
        return {"consent_id": consent_id,
                "consent_data": services.consents.decrypt_payload(consent_id, user_id)}

    @app.delete("/api/consent/{consent_id}")
    def delete_consent(consent_id: int,
                       user_id: int = Depends(get_current_user_id),
                       services: BackendServices = Depends(get_services)) -> Dict[str, Any]:
        services.consents.soft_delete(consent_id, user_id)
        return {"message": "Consent deleted"}

    @app.put("/api/consent/{consent_id}/accept-partner", response_model=ConsentActionResponse)
    def accept_consent(consent_id: int,
                       user_id: int = Depends(get_current_user_id),
                       services: BackendServices = Depends(get_services)):
        consent = services.consents.accept_by_partner(consent_id, user_id)
        return ConsentActionResponse(message="Consent accepted", consent=consent)

    @app.put("/api/consent/{consent_id}/refuse-partner", response_model=ConsentActionResponse)
    def refuse_consent(consent_id: int,
                       user_id: int = Depends(get_current_user_id),
                       services: BackendServices = Depends(get_services)):
        consent = services.consents.refuse_by_partner(consent_id, user_id)
        return ConsentActionResponse(message="Consent refused", consent=consent)

    @app.put("/api/consent/{consent_id}/confirm-biometric", response_model=ConsentActionResponse)
    def confirm_biometric(consent_id: int,
                          user_id: int = Depends(get_current_user_id),
                          services: BackendServices = Depends(get_services)):
        consent = services.consents.confirm_biometric(consent_id, user_id)
        return ConsentActionResponse(message="Biometric validation recorded", consent=consent)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    @app.get("/api/notifications/unread", response_model=List[NotificationRecord])
    def unread_notifications(user_id: int = Depends(get_current_user_id),
                             services: BackendServices = Depends(get_services)):
        return services.notifications.list_unread(user_id)

    @app.put("/api/notifications/mark-as-read")
    def mark_notifications_read(body: MarkReadRequest,
                                user_id: int = Depends(get_current_user_id),
                                services: BackendServices = Depends(get_services)) -> Dict[str, Any]:
        updated = services.notifications.mark_read(user_id, body.notification_ids)
        return {"message": "Notifications marked as read", "updated": updated}

    # -------------------------------------------------------------------------
    # Purchases
    # -------------------------------------------------------------------------

    @app.post("/api/packs/payment-sheet", response_model=PaymentSheet)
    def payment_sheet(body: PackPaymentRequest,
                      user_id: int = Depends(get_current_user_id),
                      services: BackendServices = Depends(get_services)):
        return services.purchases.create_payment_sheet(user_id, body.quantity)

    @app.post("/api/payments/webhook", response_model=WebhookOutcome)
    async def payment_webhook(request: Request,
                              services: BackendServices = Depends(get_services)):
        payload = await request.body()
        signature = request.headers.get("payment-signature")
        return await run_in_threadpool(services.purchases.handle_webhook, payload, signature)


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
