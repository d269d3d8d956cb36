from logging import Logger
from uuid import UUID

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Response

from app.container import Container
from app.controllers.api.context import (
    CORRELATION_HEADER,
    RequestContext,
    get_current_user_id,
    get_request_context,
)
from app.infra.logging import log_context
from app.schemas.profile import (
    ActivityEntry,
    AvatarUpdateRequest,
    AvatarUpdateResponse,
    ProfileUpdateRequest,
    UserProfileResponse,
)
from app.services.activity import ActivityService
from app.services.profile import ProfileService

router = APIRouter(prefix="/api/v1/auth/profile", tags=["profile"])


def _bind(ctx: RequestContext, action: str, user_id: UUID | None = None):
    return log_context(
        correlation_id=ctx.correlation_id,
        user_id=user_id,
        action=action,
        ip=ctx.ip_address,
        user_agent=ctx.user_agent,
    )


@router.get("", response_model=UserProfileResponse, response_model_by_alias=True)
@inject
async def get_profile(
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    user_id: UUID = Depends(get_current_user_id),
    svc: ProfileService = Depends(Provide[Container.profile_service]),
    logger: Logger = Depends(Provide[Container.logger]),
):
    response.headers[CORRELATION_HEADER] = ctx.correlation_id

    with _bind(ctx, "GET_PROFILE", user_id):
        logger.info("[START] Retrieving profile for user")
        try:
            profile = await svc.get_profile(user_id)
        except Exception as e:
            logger.error(f"[ERROR] Failed to retrieve profile: {e}")
            raise

        logger.info(f"[SUCCESS] Retrieved profile for userId={user_id}")
        return profile


@router.put("", response_model=UserProfileResponse, response_model_by_alias=True)
@inject
async def update_profile(
    body: ProfileUpdateRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    user_id: UUID = Depends(get_current_user_id),
    svc: ProfileService = Depends(Provide[Container.profile_service]),
    logger: Logger = Depends(Provide[Container.logger]),
):
    response.headers[CORRELATION_HEADER] = ctx.correlation_id

    with _bind(ctx, "UPDATE_PROFILE", user_id):
        logger.info("[START] Updating profile for user")
        try:
            profile = await svc.update_profile(
                user_id, body, correlation_id=ctx.correlation_id
            )
        except Exception as e:
            logger.error(f"[ERROR] Failed to update profile: {e}")
            raise

        logger.info(f"[SUCCESS] Profile updated for userId={user_id}")
        return profile


@router.post(
    "/avatar", response_model=AvatarUpdateResponse, response_model_by_alias=True
)
@inject
async def update_avatar(
    body: AvatarUpdateRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    user_id: UUID = Depends(get_current_user_id),
    svc: ProfileService = Depends(Provide[Container.profile_service]),
    logger: Logger = Depends(Provide[Container.logger]),
):
    response.headers[CORRELATION_HEADER] = ctx.correlation_id

    with _bind(ctx, "UPDATE_AVATAR", user_id):
        logger.info("[START] Updating avatar for user")
        try:
            profile = await svc.update_avatar(
                user_id, body.avatar_url, correlation_id=ctx.correlation_id
            )
        except Exception as e:
            logger.error(f"[ERROR] Failed to update avatar: {e}")
            raise

        logger.info(f"[SUCCESS] Avatar updated for userId={user_id}")
        return AvatarUpdateResponse(
            message="Avatar updated successfully",
            avatar_url=profile.avatar_url or body.avatar_url,
        )


@router.get(
    "/activity", response_model=list[ActivityEntry], response_model_by_alias=True
)
@inject
async def get_activity(
    limit: int = 50,
    ctx: RequestContext = Depends(get_request_context),
    user_id: UUID = Depends(get_current_user_id),
    svc: ActivityService = Depends(Provide[Container.activity_service]),
    logger: Logger = Depends(Provide[Container.logger]),
):
    with _bind(ctx, "GET_ACTIVITY", user_id):
        entries = await svc.list_recent(user_id, limit=max(1, min(limit, 200)))
        logger.info(f"Returned {len(entries)} activity entries")
        return entries
