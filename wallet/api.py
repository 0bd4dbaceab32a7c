from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from .config import DEFAULT_SESSION_SECRET, Settings, get_settings
from .errors import (
    InvalidDepositError,
    InvalidReferralCodeError,
    NotFoundError,
    UsernameTakenError,
)
from .logger import configure_logging, get_logger
from .models import (
    AdminStats,
    BalanceResponse,
    DepositRequest,
    DepositResponse,
    LoginRequest,
    MessageResponse,
    PendingTransaction,
    ReferralStats,
    ReferralValidation,
    RegisterRequest,
    Service,
    Transaction,
    UpdateTransactionRequest,
    User,
    UserResponse,
)
from .service import WalletService
from .sheets import SheetsClient

logger = get_logger(__name__)


def get_service(request: Request) -> WalletService:
    return request.app.state.wallet_service


def current_user(request: Request, service: WalletService = Depends(get_service)) -> User:
    user_id = request.session.get("user_id")
    user = service.get_user(user_id) if user_id is not None else None
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


def admin_user(user: User = Depends(current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


def create_app(settings: Optional[Settings] = None, service: Optional[WalletService] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)
    if settings.session_secret == DEFAULT_SESSION_SECRET:
        logger.warning("default_session_secret", detail="set WALLET_SESSION_SECRET; session cookies are signed with a public default")

    if service is None:
        service = WalletService(
            settings=settings,
            sheets=SheetsClient(
                credentials_url=settings.sheets_credentials_url,
                referral_url=settings.sheets_referral_url,
                timeout=settings.sheets_timeout,
            ),
        )

    app = FastAPI(
        title=settings.app_name,
        description="Wallet, referral bonus and deposit approval API for the OTP marketplace",
        version=settings.app_version,
    )
    app.state.wallet_service = service

    app.add_middleware(SessionMiddleware, secret_key=settings.session_secret, same_site="lax")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_input(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("invalid_input", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": "Invalid input data"})

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "otp-wallet"}

    # --- auth ---

    @app.post("/api/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED, tags=["Auth"])
    def register(body: RegisterRequest, request: Request, service: WalletService = Depends(get_service)):
        try:
            user = service.register_user(body.username, body.password, body.referral_code)
        except (UsernameTakenError, InvalidReferralCodeError) as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        request.session["user_id"] = user.id
        return user

    @app.post("/api/login", response_model=UserResponse, tags=["Auth"])
    def login(body: LoginRequest, request: Request, service: WalletService = Depends(get_service)):
        user = service.authenticate(body.username, body.password)
        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
        request.session["user_id"] = user.id
        return user

    @app.post("/api/logout", response_model=MessageResponse, tags=["Auth"])
    def logout(request: Request):
        request.session.clear()
        return MessageResponse(message="Logged out")

    @app.get("/api/user", response_model=UserResponse, tags=["Auth"])
    def get_current_user(user: User = Depends(current_user)):
        return user

    # --- wallet ---

    @app.get("/api/balance", response_model=BalanceResponse, tags=["Wallet"])
    def get_balance(user: User = Depends(current_user)):
        return BalanceResponse(balance=user.wallet_balance)

    @app.post("/api/balance", response_model=DepositResponse, tags=["Wallet"])
    def add_balance(
        body: DepositRequest,
        user: User = Depends(current_user),
        service: WalletService = Depends(get_service),
    ):
        try:
            transaction, updated = service.submit_deposit(user.id, body.amount, body.utr_number)
        except InvalidDepositError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except NotFoundError:
            logger.exception("deposit_failed", user_id=user.id)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to process transaction")
        return DepositResponse(transaction=transaction, user=updated)

    @app.get("/api/transactions", response_model=list[Transaction], tags=["Wallet"])
    def get_transactions(user: User = Depends(current_user), service: WalletService = Depends(get_service)):
        return service.list_transactions(user.id)

    @app.get("/api/otp-services", response_model=list[Service], tags=["Catalog"])
    def get_otp_services(user: User = Depends(current_user), service: WalletService = Depends(get_service)):
        return service.list_services()

    # --- referrals ---

    @app.get("/api/referral-stats", response_model=ReferralStats, tags=["Referrals"])
    def get_referral_stats(user: User = Depends(current_user), service: WalletService = Depends(get_service)):
        try:
            return service.referral_stats(user.id)
        except NotFoundError:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch referral stats")

    @app.get("/api/validate-referral/{code}", response_model=ReferralValidation, tags=["Referrals"])
    def validate_referral(code: str, service: WalletService = Depends(get_service)):
        return ReferralValidation(valid=service.validate_referral_code(code))

    # --- admin ---

    @app.get("/api/admin/stats", response_model=AdminStats, tags=["Admin"])
    def get_admin_stats(admin: User = Depends(admin_user), service: WalletService = Depends(get_service)):
        return service.admin_stats()

    @app.get("/api/admin/pending-transactions", response_model=list[PendingTransaction], tags=["Admin"])
    def get_pending_transactions(admin: User = Depends(admin_user), service: WalletService = Depends(get_service)):
        return service.list_pending_transactions()

    @app.post("/api/admin/update-transaction/{transaction_id}", response_model=MessageResponse, tags=["Admin"])
    def update_transaction(
        transaction_id: int,
        body: UpdateTransactionRequest,
        admin: User = Depends(admin_user),
        service: WalletService = Depends(get_service),
    ):
        try:
            service.review_transaction(transaction_id, body.status)
        except NotFoundError:
            logger.exception("transaction_update_failed", transaction_id=transaction_id)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update transaction")
        logger.info("transaction_reviewed", transaction_id=transaction_id, status=body.status.value, admin=admin.username)
        return MessageResponse(message="Transaction updated successfully")

    return app


app = create_app()
