"""
Service wiring and FastAPI dependencies.

ServiceContainer holds one instance of each collaborator. The app builds it
from Settings on first use unless one was injected (tests inject their own).
Every authenticated route depends on current_principal, which verifies the
bearer token and then applies admission control for that principal.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from fastapi import Depends, Header, Request

from contribution_review.access.admission import AdmissionControl, InMemoryAdmissionControl
from contribution_review.access.auth import principal_from_authorization
from contribution_review.access.capabilities import Principal
from contribution_review.coins.registry import CoinRegistry
from contribution_review.config import Settings, get_settings
from contribution_review.database.database import ContributionRepository, get_database
from contribution_review.receipts.storage import ReceiptStore
from contribution_review.review.engine import ReviewTransitionEngine
from contribution_review.review.store import ContributionRecordStore
from contribution_review.review_logging import bind_principal, get_logger

logger = get_logger(__name__)

_build_lock = threading.Lock()


@dataclass
class ServiceContainer:
    settings: Settings
    repository: ContributionRepository
    store: ContributionRecordStore
    engine: ReviewTransitionEngine
    coins: CoinRegistry
    receipts: ReceiptStore
    admission: AdmissionControl


def build_services(
    settings: Settings | None = None,
    *,
    repository: ContributionRepository | None = None,
    admission: AdmissionControl | None = None,
) -> ServiceContainer:
    """Wire every collaborator from settings; pass repository/admission to override."""
    settings = settings or get_settings()
    repository = repository or get_database(settings.database_url)
    services = ServiceContainer(
        settings=settings,
        repository=repository,
        store=ContributionRecordStore(repository),
        engine=ReviewTransitionEngine(repository),
        coins=CoinRegistry(repository, auto_register_unknown=settings.auto_register_unknown_coins),
        receipts=ReceiptStore(settings.receipts_dir, max_bytes=settings.max_receipt_bytes),
        admission=admission
        or InMemoryAdmissionControl(
            settings.rate_limit_max_requests, settings.rate_limit_window_ms
        ),
    )
    logger.info(
        "services_built",
        rate_limit_max_requests=settings.rate_limit_max_requests,
        rate_limit_window_ms=settings.rate_limit_window_ms,
        auto_register_unknown_coins=settings.auto_register_unknown_coins,
    )
    return services


def get_services(request: Request) -> ServiceContainer:
    """Dependency: the app's ServiceContainer, built lazily on first request."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        with _build_lock:
            services = getattr(request.app.state, "services", None)
            if services is None:
                services = build_services()
                request.app.state.services = services
    return services


async def current_principal(
    authorization: str | None = Header(None),
    services: ServiceContainer = Depends(get_services),
) -> Principal:
    """Dependency: verified principal that passed admission control (401 / 429 otherwise)."""
    principal = principal_from_authorization(
        authorization,
        secret=services.settings.jwt_secret,
        algorithm=services.settings.jwt_algorithm,
    )
    bind_principal(principal.id)
    services.admission.enforce(principal.id)
    return principal
