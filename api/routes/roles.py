"""
api/routes/roles.py -- Role management and site config endpoints.

Routes:
  POST /api/roles/promote   -- set a user's role to knight/civilian (promote_user)
  GET  /api/config          -- read site settings (signed-in users)
  POST /api/config          -- change the default role (manage_config)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from api.models import ConfigResponse, ConfigUpdate, PromoteRequest, PromoteResponse
from auth.dependencies import get_current_user, require_permission
from auth.models import User
from auth.service import get_default_role, promote_user, set_default_role
from auth.store import UserStore
from core.permissions import Permission

logger = logging.getLogger("moeauth.api.roles")

# Auth policy:
# - POST /api/roles/promote:  requires promote_user
# - GET  /api/config:         requires auth
# - POST /api/config:         requires manage_config
router = APIRouter()


@router.post("/roles/promote", response_model=PromoteResponse)
async def promote(
    request: Request,
    body: PromoteRequest,
    current_user: User = Depends(require_permission(Permission.PROMOTE_USER)),
) -> PromoteResponse:
    user_store: UserStore = request.app.state.user_store
    role = promote_user(user_store, body.user_id, body.role_name.value)
    logger.info("User id=%d set role of user id=%d to %r", current_user.id, body.user_id, role.name)
    return PromoteResponse(user_id=body.user_id, role_name=role.name)


@router.get("/config", response_model=ConfigResponse)
async def read_config(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> ConfigResponse:
    return ConfigResponse(default_role=get_default_role(request.app.state.user_store))


@router.post("/config", response_model=ConfigResponse)
async def update_config(
    request: Request,
    body: ConfigUpdate,
    current_user: User = Depends(require_permission(Permission.MANAGE_CONFIG)),
) -> ConfigResponse:
    user_store: UserStore = request.app.state.user_store
    set_default_role(user_store, body.default_role.value)
    logger.info("User id=%d set default role to %r", current_user.id, body.default_role.value)
    return ConfigResponse(default_role=get_default_role(user_store))
