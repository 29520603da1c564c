"""Kopf handlers for ConfluentRoleBinding and ConfluentResourceBinding
resources.

A ConfluentRoleBinding binds a role on a whole Kafka, Schema Registry,
Connect or ksqlDB cluster. A ConfluentResourceBinding binds a role on a
topic, group, subject or connector name pattern.
"""

__all__ = (
    "check_resource_binding",
    "check_role_binding",
    "create_resource_binding",
    "create_role_binding",
    "delete_resource_binding",
    "delete_role_binding",
    "parse_resource_binding_spec",
    "parse_role_binding_spec",
    "update_resource_binding",
    "update_role_binding",
)

from collections.abc import Callable
from typing import Any

import kopf

from confluentresourceoperator import state
from confluentresourceoperator.errors import DriftDetected
from confluentresourceoperator.handlers.common import (
    API_GROUP,
    API_VERSION,
    drift_status,
    get_gateway,
    recorded_identity,
)
from confluentresourceoperator.identity import encode_identity
from confluentresourceoperator.rolebindings import (
    BindingSpec,
    ClusterRoleBindingSpec,
    ResourceRoleBindingSpec,
    RoleBindingReconciler,
)

ROLE_BINDING_PLURAL = "confluentrolebindings"
RESOURCE_BINDING_PLURAL = "confluentresourcebindings"

SpecParser = Callable[[dict[str, Any]], BindingSpec]

UPDATE_FIELD = "spec"
"""Field the update handlers watch. Kopf appends it to the handler id, so
the result of ``update_role_binding`` is stored under
``status["update_role_binding/spec"]``.
"""


def parse_role_binding_spec(spec: dict[str, Any]) -> ClusterRoleBindingSpec:
    """Build the desired binding from a ConfluentRoleBinding spec."""
    return ClusterRoleBindingSpec(
        principal=spec.get("principal", ""),
        role=spec.get("role", "DeveloperRead"),
        cluster_id=spec.get("clusterId", ""),
        cluster_type=spec.get("clusterType"),
        schema_registry_cluster_id=spec.get("schemaRegistryClusterId", ""),
        connect_cluster_id=spec.get("connectClusterId", ""),
        ksql_cluster_id=spec.get("ksqlClusterId", ""),
    )


def parse_resource_binding_spec(
    spec: dict[str, Any],
) -> ResourceRoleBindingSpec:
    """Build the desired binding from a ConfluentResourceBinding spec."""
    return ResourceRoleBindingSpec(
        principal=spec.get("principal", ""),
        role=spec.get("role", "DeveloperRead"),
        cluster_id=spec.get("clusterId", ""),
        name=spec.get("name", ""),
        pattern_type=spec.get("patternType", "LITERAL"),
        resource_type=spec.get("resourceType"),
        schema_registry_cluster_id=spec.get("schemaRegistryClusterId", ""),
        connect_cluster_id=spec.get("connectClusterId", ""),
        ksql_cluster_id=spec.get("ksqlClusterId", ""),
    )


def _handler_ids(kind: str) -> tuple[str, str]:
    # An update replaces the binding, so its identity supersedes the one
    # recorded at creation.
    return f"update_{kind}/{UPDATE_FIELD}", f"create_{kind}"


def _current_identity(
    status: dict[str, Any], spec: dict[str, Any], parse: SpecParser, kind: str
) -> str:
    identity = recorded_identity(status, *_handler_ids(kind))
    if identity is None:
        identity = encode_identity(parse(spec).to_binding())
    return identity


def _create(spec: dict[str, Any], parse: SpecParser, logger: Any) -> dict:
    reconciler = RoleBindingReconciler(get_gateway(), logger=logger)
    return {"identity": reconciler.create(parse(spec))}


def _update(
    old: dict[str, Any],
    new: dict[str, Any],
    status: dict[str, Any],
    parse: SpecParser,
    kind: str,
    logger: Any,
) -> dict:
    identity = _current_identity(status, old, parse, kind)
    reconciler = RoleBindingReconciler(get_gateway(), logger=logger)
    return {"identity": reconciler.update(identity, parse(old), parse(new))}


def _delete(
    spec: dict[str, Any],
    status: dict[str, Any],
    parse: SpecParser,
    kind: str,
    logger: Any,
) -> None:
    identity = _current_identity(status, spec, parse, kind)
    RoleBindingReconciler(get_gateway(), logger=logger).delete(identity)


def _check(
    spec: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    parse: SpecParser,
    kind: str,
    logger: Any,
) -> None:
    if recorded_identity(status, *_handler_ids(kind)) is None:
        # Not created yet.
        return
    identity = _current_identity(status, spec, parse, kind)
    reconciler = RoleBindingReconciler(get_gateway(), logger=logger)
    try:
        reconciler.read(identity)
    except DriftDetected as e:
        logger.warning(f"Role binding drifted: {e}")
        patch.status["drift"] = drift_status([e.message])
        return
    patch.status["drift"] = drift_status([])


@kopf.on.create(  # type: ignore[arg-type]
    API_GROUP, API_VERSION, ROLE_BINDING_PLURAL
)
def create_role_binding(
    *, spec: dict[str, Any], logger: Any, **kwargs: Any
) -> dict[str, Any]:
    """Handle creation of a ConfluentRoleBinding by binding the role.

    The returned identity is stored by kopf in
    ``status.create_role_binding``.
    """
    return _create(spec, parse_role_binding_spec, logger)


@kopf.on.update(  # type: ignore[arg-type]
    API_GROUP, API_VERSION, ROLE_BINDING_PLURAL, field=UPDATE_FIELD
)
def update_role_binding(
    *,
    old: dict[str, Any],
    new: dict[str, Any],
    status: dict[str, Any],
    logger: Any,
    **kwargs: Any,
) -> dict[str, Any]:
    """Handle a ConfluentRoleBinding spec change by replacing the binding."""
    return _update(
        old, new, status, parse_role_binding_spec, "role_binding", logger
    )


@kopf.on.delete(  # type: ignore[arg-type]
    API_GROUP, API_VERSION, ROLE_BINDING_PLURAL
)
def delete_role_binding(
    *,
    spec: dict[str, Any],
    status: dict[str, Any],
    logger: Any,
    **kwargs: Any,
) -> None:
    """Handle deletion of a ConfluentRoleBinding by unbinding the role."""
    _delete(spec, status, parse_role_binding_spec, "role_binding", logger)


@kopf.timer(  # type: ignore[arg-type]
    API_GROUP,
    API_VERSION,
    ROLE_BINDING_PLURAL,
    interval=state.drift_check_interval,
    idle=state.drift_check_interval,
)
def check_role_binding(
    *,
    spec: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Periodically check that the role is still bound."""
    _check(
        spec, status, patch, parse_role_binding_spec, "role_binding", logger
    )


@kopf.on.create(  # type: ignore[arg-type]
    API_GROUP, API_VERSION, RESOURCE_BINDING_PLURAL
)
def create_resource_binding(
    *, spec: dict[str, Any], logger: Any, **kwargs: Any
) -> dict[str, Any]:
    """Handle creation of a ConfluentResourceBinding by binding the role on
    the resource pattern.
    """
    return _create(spec, parse_resource_binding_spec, logger)


@kopf.on.update(  # type: ignore[arg-type]
    API_GROUP, API_VERSION, RESOURCE_BINDING_PLURAL, field=UPDATE_FIELD
)
def update_resource_binding(
    *,
    old: dict[str, Any],
    new: dict[str, Any],
    status: dict[str, Any],
    logger: Any,
    **kwargs: Any,
) -> dict[str, Any]:
    """Replace the binding when a ConfluentResourceBinding spec changes."""
    return _update(
        old,
        new,
        status,
        parse_resource_binding_spec,
        "resource_binding",
        logger,
    )


@kopf.on.delete(  # type: ignore[arg-type]
    API_GROUP, API_VERSION, RESOURCE_BINDING_PLURAL
)
def delete_resource_binding(
    *,
    spec: dict[str, Any],
    status: dict[str, Any],
    logger: Any,
    **kwargs: Any,
) -> None:
    """Unbind the role when a ConfluentResourceBinding is deleted."""
    _delete(
        spec, status, parse_resource_binding_spec, "resource_binding", logger
    )


@kopf.timer(  # type: ignore[arg-type]
    API_GROUP,
    API_VERSION,
    RESOURCE_BINDING_PLURAL,
    interval=state.drift_check_interval,
    idle=state.drift_check_interval,
)
def check_resource_binding(
    *,
    spec: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Periodically check that the role is still bound on the pattern with
    the same pattern type.
    """
    _check(
        spec,
        status,
        patch,
        parse_resource_binding_spec,
        "resource_binding",
        logger,
    )
