import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from schemas import BudgetsIn, LoginIn, RegisterIn, TransactionIn
from services import (
    AccountService,
    BudgetService,
    DuplicateEmail,
    InvalidCredentials,
    TransactionService,
    UserNotFound,
    ValidationError,
)
from store import StoreUnavailable, UserStore, build_store

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open(Path(__file__).with_name("pyproject.toml"), "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

ENDPOINTS = [
    {"method": "POST", "path": "/register", "description": "Create new account"},
    {"method": "POST", "path": "/login", "description": "Authenticate user"},
    {"method": "GET", "path": "/user/:email", "description": "Get full user data"},
    {"method": "PUT", "path": "/user/:email", "description": "Update user data"},
    {
        "method": "POST",
        "path": "/user/:email/transaction",
        "description": "Add a transaction (expense/income) for user",
    },
    {"method": "GET", "path": "/user/:email/budgets", "description": "Budget progress"},
    {"method": "PUT", "path": "/user/:email/budgets", "description": "Replace budgets"},
    {"method": "GET", "path": "/users", "description": "List users (debug)"},
]


@lru_cache(maxsize=1)
def get_store() -> UserStore:
    return build_store(get_settings())


def store_failure(action: str, exc: StoreUnavailable) -> HTTPException:
    logger.exception(f"store_unavailable: action={action}", exc_info=exc)
    return HTTPException(status_code=500, detail="Internal server error")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    reason = first.get("msg", "Invalid request")
    message = f"Invalid field '{field}': {reason}" if field else reason
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "An unexpected error occurred"},
    )


@app.get("/")
def service_status():
    return {
        "status": "running",
        "message": "Finance Tracker Backend API",
        "version": APP_VERSION,
        "endpoints": ENDPOINTS,
    }


@app.post("/register", status_code=201)
def register(payload: RegisterIn, store: UserStore = Depends(get_store)):
    try:
        user = AccountService(store).register(payload)
    except DuplicateEmail as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise store_failure("register", exc) from exc
    return {"success": True, "message": "Registration successful", "user": user}


@app.post("/login")
def login(payload: LoginIn, store: UserStore = Depends(get_store)):
    try:
        user = AccountService(store).authenticate(payload)
    except InvalidCredentials as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise store_failure("login", exc) from exc
    return {"success": True, "message": "Login successful", "user": user}


@app.get("/user/{email}")
def get_user(email: str, store: UserStore = Depends(get_store)):
    try:
        return AccountService(store).get_by_email(email)
    except UserNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise store_failure("get_user", exc) from exc


@app.put("/user/{email}")
def update_user(
    email: str,
    patch: dict[str, Any] = Body(...),
    store: UserStore = Depends(get_store),
):
    try:
        return BudgetService(store).update_user(email, patch)
    except UserNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise store_failure("update_user", exc) from exc


@app.post("/user/{email}/transaction")
def add_transaction(
    email: str, payload: TransactionIn, store: UserStore = Depends(get_store)
):
    try:
        user = TransactionService(store).add_transaction(email, payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UserNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise store_failure("add_transaction", exc) from exc
    return {"success": True, "message": "Transaction added", "user": user}


@app.get("/user/{email}/budgets")
def budget_progress(email: str, store: UserStore = Depends(get_store)):
    try:
        return {"budgets": BudgetService(store).progress(email)}
    except UserNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise store_failure("budget_progress", exc) from exc


@app.put("/user/{email}/budgets")
def replace_budgets(
    email: str, payload: BudgetsIn, store: UserStore = Depends(get_store)
):
    try:
        return BudgetService(store).replace_budgets(email, payload.budgets)
    except UserNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise store_failure("replace_budgets", exc) from exc


@app.get("/users")
def list_users(store: UserStore = Depends(get_store)):
    try:
        return AccountService(store).list_all()
    except StoreUnavailable as exc:
        logger.exception("store_unavailable: action=list_users", exc_info=exc)
        raise HTTPException(
            status_code=500, detail="Failed to retrieve users"
        ) from exc
