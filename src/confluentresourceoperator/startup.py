"""Code intended to run on start-up, before running any handlers."""

__all__ = ("build_gateway", "load_gateway_factory", "start_operator")

import pkgutil
from typing import Any

import kopf
import structlog
from kubernetes.client.exceptions import ApiException

from confluentresourceoperator import state
from confluentresourceoperator.errors import ValidationError
from confluentresourceoperator.gateway import ClusterGateway, GatewayFactory
from confluentresourceoperator.k8s import (
    create_k8sclient,
    get_gateway_settings,
)
from confluentresourceoperator.version import __version__


@kopf.on.startup()
def start_operator(logger: Any, **kwargs: Any) -> None:
    """Start up the operator, building the cluster gateway that every
    handler uses.
    """
    logger.info(f"Starting confluent-resource-operator {__version__}")
    state.gateway = build_gateway(
        factory_path=state.gateway_factory,
        namespace=state.namespace,
        secret_name=state.gateway_secret,
        k8s_client=create_k8sclient(),
        logger=logger,
    )


def build_gateway(
    *,
    factory_path: str,
    namespace: str,
    secret_name: str,
    k8s_client: Any,
    logger: Any | None = None,
) -> ClusterGateway:
    """Build the cluster gateway from its factory and settings Secret.

    Parameters
    ----------
    factory_path : `str`
        Import path of the gateway factory, as ``module:attribute``.
    namespace : `str`
        Namespace of the gateway settings Secret.
    secret_name : `str`
        Name of the gateway settings Secret. A missing Secret means the
        factory is called with no settings.
    k8s_client
        A Kubernetes client (see
        `confluentresourceoperator.k8s.create_k8sclient`).
    logger : optional
        Logger to use. If not provided, a structlog logger is used.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)

    factory = load_gateway_factory(factory_path)

    try:
        settings = get_gateway_settings(
            namespace=namespace, name=secret_name, k8s_client=k8s_client
        )
        logger.info(f"Loaded gateway settings from Secret {secret_name}")
    except ApiException as e:
        if e.status != 404:
            logger.exception("Error retrieving the gateway settings Secret.")
            raise
        logger.warning(
            f"Gateway settings Secret {secret_name} does not exist; "
            "building the gateway without settings."
        )
        settings = {}

    gateway = factory(settings)
    logger.info(f"Built cluster gateway with {factory_path}")
    return gateway


def load_gateway_factory(path: str) -> GatewayFactory:
    """Import the gateway factory named by ``path``.

    Raises
    ------
    ValidationError
        Raised if ``path`` is empty, cannot be imported, or does not name a
        callable.
    """
    if not path:
        raise ValidationError(
            "no gateway factory configured; set CRO_GATEWAY_FACTORY"
        )
    try:
        factory = pkgutil.resolve_name(path)
    except (ImportError, AttributeError, ValueError) as err:
        raise ValidationError(
            f"cannot import gateway factory {path}: {err}"
        ) from err
    if not callable(factory):
        raise ValidationError(f"gateway factory {path} is not callable")
    return factory
