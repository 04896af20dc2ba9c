from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from app.core.errors import MalformedPayload
from app.dependencies.storage import get_subscription_store, get_user_directory
from app.schemas.hotmart import VerifySubscriptionRequest, VerifySubscriptionResponse
from app.services.identity import UserDirectory
from app.services.subscription_store import SubscriptionStore
from app.services.verification import resolve_verification_email, verify_subscription

router = APIRouter(tags=["Subscriptions"])
logger = logging.getLogger(__name__)


@router.post("/verify-subscription", response_model=VerifySubscriptionResponse, response_model_exclude_unset=True)
async def verify_subscription_route(
    request: Request,
    store: SubscriptionStore = Depends(get_subscription_store),
    directory: UserDirectory = Depends(get_user_directory),
):
    try:
        body = await request.json()
    except Exception:
        raise MalformedPayload("Invalid JSON body")

    query = VerifySubscriptionRequest.model_validate(body if isinstance(body, dict) else {})
    email = resolve_verification_email(query.email)

    # Store and directory calls block; keep them off the event loop.
    return await run_in_threadpool(verify_subscription, store, directory, email)
