from datetime import datetime, date
from typing import Optional, Union

from fastapi import FastAPI, HTTPException, Request, Depends, Query
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, AliasChoices
import uvicorn

from fxrates.core.constants import *
from fxrates.margins.errors import MarginValidationError, MarginConflictError, MarginNotFoundError
from fxrates import logger


class MarginPayload(BaseModel):
    """Body of margin create/update requests, value is in percent"""
    model_config = ConfigDict(populate_by_name=True)

    value: Optional[Union[float, str]] = Field(default=None,
                                               validation_alias=AliasChoices("value", "marginValue"))
    startDate: Optional[str] = None
    endDate: Optional[str] = None


class CreateMarginPayload(MarginPayload):
    forceCreate: bool = False


def forwarded_user_authenticator(header_name=DEFAULT_AUTH_HEADER):
    """
    Authenticator trusting the user id forwarded by the authenticating gateway

    Returns:
        Callable(request) -> user id or None
    """
    def authenticate(request: Request):
        raw = request.headers.get(header_name)
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"ignoring malformed {header_name} header")
            return None

    return authenticate


def to_json_safe(obj):
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    return obj


def margin_to_dict(margin):
    owner = margin.owner
    margin_dict = {
        FIELD_ID: margin.id,
        FIELD_VALUE: float(margin.value),
        FIELD_START_DATE: margin.start_date,
        FIELD_END_DATE: margin.end_date,
        FIELD_OWNER_ID: margin.user_id,
        FIELD_OWNER_DISPLAY_NAME: owner.display_name if owner is not None else None,
    }
    return {k: to_json_safe(v) for k, v in margin_dict.items()}


def change_to_dict(change):
    change_dict = {
        'id': change.id,
        'action': change.action,
        'userId': change.user_id,
        'oldMarginId': change.old_margin_id,
        'newMarginId': change.new_margin_id,
        'changedAt': change.changed_at,
        'comment': change.comment,
    }
    return {k: to_json_safe(v) for k, v in change_dict.items()}


class MarginsApi:
    """HTTP surface of the margin timeline"""

    def __init__(self, application_context, authenticator=None):
        if application_context is None:
            raise ValueError("application_context is REQUIRED")

        self.application_context = application_context
        self.state_manager = application_context.state_manager
        self.margin_service = application_context.margin_service
        if self.margin_service is None:
            raise ValueError("margin_service is REQUIRED")

        if authenticator is None:
            header_name = self.state_manager.get_config_value(CONFIG_AUTH_HEADER) or DEFAULT_AUTH_HEADER
            authenticator = forwarded_user_authenticator(header_name)
        self.authenticator = authenticator

        self.prefix = self.state_manager.get_config_value(CONFIG_API_PREFIX) or DEFAULT_API_PREFIX
        self.app = FastAPI(title="fxrates margins")
        self.setup_cors()
        self.setup_error_handlers()
        self.setup_routes()

    def setup_cors(self):
        origins = self.state_manager.get_config_value(CONFIG_CORS_ORIGINS) or ["*"]

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def setup_error_handlers(self):
        @self.app.exception_handler(RequestValidationError)
        async def request_validation_error(request, exc):
            return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": str(exc)})

        @self.app.exception_handler(MarginValidationError)
        async def margin_validation_error(request, exc):
            logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
            return JSONResponse(status_code=400, content={"error": str(exc)})

        @self.app.exception_handler(MarginNotFoundError)
        async def margin_not_found(request, exc):
            return JSONResponse(status_code=404, content={"error": "Margin not found"})

        @self.app.exception_handler(MarginConflictError)
        async def margin_conflict(request, exc):
            return JSONResponse(status_code=409, content={
                "message": "Conflict detected",
                FIELD_CONFLICTS: {FIELD_OVERLAPPING: exc.conflicts},
                "confirmationRequired": True,
            })

        @self.app.exception_handler(Exception)
        async def unexpected_error(request, exc):
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
            return JSONResponse(status_code=500, content={"error": "Internal server error"})

    def setup_routes(self):
        prefix = self.prefix

        def current_user(request: Request):
            user_id = self.authenticator(request)
            if user_id is None:
                raise HTTPException(status_code=401, detail="Access denied. No authorization token provided.")
            return user_id

        @self.app.get(f"{prefix}/health")
        async def health():
            return {"ok": True, "time": datetime.now(self.state_manager.get_timezone()).isoformat()}

        @self.app.get(f"{prefix}/margins")
        def get_margins(active: Optional[str] = None, user_id: int = Depends(current_user)):
            is_active = str(active).lower() == "true"
            margins = self.margin_service.list_margins(active=is_active)
            return [margin_to_dict(m) for m in margins]

        @self.app.get(f"{prefix}/margins/history")
        def get_margin_history(user_id: int = Depends(current_user)):
            return [margin_to_dict(m) for m in self.margin_service.get_margin_history()]

        @self.app.get(f"{prefix}/margins/effective")
        def get_effective_margin(date: Optional[str] = None, user_id: int = Depends(current_user)):
            margin = self.margin_service.get_effective_margin(date)
            if margin is None:
                return JSONResponse(status_code=404, content={"error": f"No margin effective on {date}"})
            return margin_to_dict(margin)

        @self.app.get(f"{prefix}/margins/changes")
        def get_changes(limit: int = Query(default=50, ge=1, le=1000), user_id: int = Depends(current_user)):
            return [change_to_dict(c) for c in self.margin_service.list_changes(limit)]

        @self.app.post(f"{prefix}/margins/create", status_code=201)
        def create_margin(payload: CreateMarginPayload, user_id: int = Depends(current_user)):
            result = self.margin_service.create_margin(payload.value,
                                                       payload.startDate,
                                                       payload.endDate,
                                                       force_create=payload.forceCreate,
                                                       user_id=user_id)
            return {"success": True, "message": "Margin created", "id": result.margin_id,
                    "closed": result.closed, "shifted": result.shifted, "deleted": result.deleted}

        @self.app.put(f"{prefix}/margins/update/{{margin_id}}")
        def update_margin(margin_id: int, payload: MarginPayload, user_id: int = Depends(current_user)):
            result = self.margin_service.update_margin(margin_id,
                                                       payload.value,
                                                       payload.startDate,
                                                       payload.endDate,
                                                       user_id=user_id)
            return {"success": True, "message": "Margin updated", "id": result.margin_id,
                    "closed": result.closed, "shifted": result.shifted, "deleted": result.deleted}

        @self.app.post(f"{prefix}/margins/relink")
        def relink_margins(user_id: int = Depends(current_user)):
            return {"updated": self.margin_service.relink_all()}

    def run(self, host=None, port=None):
        host = host or self.state_manager.get_config_value(CONFIG_API_HOST) or DEFAULT_API_HOST
        port = port or self.state_manager.get_config_value(CONFIG_API_PORT) or DEFAULT_API_PORT
        logger.info(f"Margin API listening on {host}:{port}")
        uvicorn.run(self.app, host=host, port=port)
