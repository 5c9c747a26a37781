"""
Tenant resolution.

Order: X-Tenant-ID header, subdomain of the Host, exact Host domain, then (in
development only) the default tenant, which is created on first use.
"""
import logging
from typing import Optional

from fastapi import Depends, Request

from app.dependencies import Services, get_services
from app.errors import ForbiddenError, NotFoundError
from app.models.schemas import Tenant

logger = logging.getLogger(__name__)


def _host(request: Request) -> str:
    host = request.headers.get("host", "")
    return host.split(":")[0].strip().lower()


def _subdomain(host: str) -> Optional[str]:
    labels = host.split(".")
    # acme.moodpulse.io -> acme; plain domains and localhost have no subdomain
    if len(labels) >= 3 and labels[0] not in ("www", ""):
        return labels[0]
    return None


def resolve_tenant(request: Request, services: Services) -> Optional[Tenant]:
    db = services.db

    tenant_id = request.headers.get("X-Tenant-ID")
    if tenant_id:
        tenant = db.get_tenant(tenant_id.strip())
        if tenant:
            return tenant

    host = _host(request)
    subdomain = _subdomain(host)
    if subdomain:
        tenant = db.get_tenant_by_subdomain(subdomain)
        if tenant:
            return tenant

    if host:
        tenant = db.get_tenant_by_domain(host)
        if tenant:
            return tenant

    settings = services.settings
    if settings.is_development:
        tenant = db.get_tenant_by_domain(settings.DEFAULT_TENANT_DOMAIN)
        if tenant is None:
            logger.info(f"✅ Creating default tenant for {settings.DEFAULT_TENANT_DOMAIN}")
            tenant = db.create_tenant(Tenant(
                name="Default Tenant",
                domain=settings.DEFAULT_TENANT_DOMAIN,
                subdomain="default",
            ))
        return tenant

    return None


async def get_current_tenant(
    request: Request,
    services: Services = Depends(get_services),
) -> Tenant:
    """Dependency resolving the request's tenant. 404 when unknown, 403 when not usable."""
    tenant = resolve_tenant(request, services)

    if tenant is None:
        logger.warning(f"⚠️ No tenant for host '{_host(request)}' on {request.url.path}")
        raise NotFoundError("The requested organization could not be found", error="Tenant not found")

    if not tenant.is_active:
        logger.warning(f"⚠️ Request for inactive tenant {tenant.id}")
        raise ForbiddenError("This organization account has been suspended", error="Tenant inactive")

    if not tenant.subscription.is_current():
        logger.warning(f"⚠️ Request for tenant {tenant.id} without an active subscription")
        raise ForbiddenError("This organization subscription is not active", error="Subscription inactive")

    request.state.tenant = tenant
    return tenant
