"""Workload readiness and in-cluster address derivation."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..constants import CAPABILITIES_PATH_ANNOTATION, CLUSTER_DOMAIN, DEFAULT_CAPABILITIES_PATH
from ..exceptions import ServiceResolutionError
from ..model.resources import Service, ServicePort, Workload
from ..runtime.store import ResourceStore

logger = logging.getLogger(__name__)

_WEB_PROTOCOLS = ("http", "https")


def is_ready(workload: Workload) -> bool:
    """Both observed and available replicas must equal the desired count."""
    desired = workload.spec.replicas
    status = workload.status
    ready = (
        status.replicas is not None
        and status.available_replicas is not None
        and status.replicas == desired
        and status.available_replicas == desired
    )
    logger.debug(
        "Workload %s/%s: replicas=%s available=%s desired=%d ready=%s",
        workload.namespace,
        workload.name,
        status.replicas,
        status.available_replicas,
        desired,
        ready,
    )
    return ready


def selects(service: Service, workload: Workload) -> bool:
    """A service fronts a workload when its non-empty selector matches the pod labels."""
    selector = service.spec.selector
    if not selector:
        return False
    labels = workload.spec.template_labels
    return all(labels.get(k) == v for k, v in selector.items())


async def find_service(store: ResourceStore, workload: Workload) -> Service:
    services = [
        svc for svc in await store.list(Service, namespace=workload.namespace) if selects(svc, workload)
    ]
    if len(services) != 1:
        names = sorted(svc.name for svc in services)
        raise ServiceResolutionError(
            f"Expected exactly one service for workload '{workload.name}', but got {len(services)}",
            payload={"workload": workload.name, "services": names},
        )
    return services[0]


def _unique(ports: Sequence[ServicePort], attr: str) -> Optional[ServicePort]:
    found: List[ServicePort] = [
        p for p in ports if (getattr(p, attr) or "").lower() in _WEB_PROTOCOLS
    ]
    return found[0] if len(found) == 1 else None


def select_port(service: Service) -> ServicePort:
    ports = service.spec.ports
    if not ports:
        raise ServiceResolutionError(
            f"Service '{service.name}' exposes no ports", payload={"service": service.name}
        )
    return _unique(ports, "app_protocol") or _unique(ports, "name") or ports[0]


def base_url(service: Service) -> str:
    port = select_port(service)
    secure = (
        (port.app_protocol or "").lower() == "https"
        or (port.name or "").lower() == "https"
        or port.port == 443
    )
    scheme = "https" if secure else "http"
    url = f"{scheme}://{service.name}.{service.namespace}.{CLUSTER_DOMAIN}:{port.port}"
    logger.debug("Service URL is: %s", url)
    return url


def capabilities_path(workload: Workload, default: str = DEFAULT_CAPABILITIES_PATH) -> str:
    return workload.metadata.annotations.get(CAPABILITIES_PATH_ANNOTATION, default)


def join_url(base: str, path: str) -> str:
    return f"{base}{path}" if path.startswith("/") else f"{base}/{path}"


async def service_url(
    store: ResourceStore, workload: Workload, default_path: str = DEFAULT_CAPABILITIES_PATH
) -> str:
    """Full discovery URL of a workload's capability manifest."""
    service = await find_service(store, workload)
    return join_url(base_url(service), capabilities_path(workload, default_path))


__all__ = [
    "base_url",
    "capabilities_path",
    "find_service",
    "is_ready",
    "join_url",
    "select_port",
    "selects",
    "service_url",
]
