"""Reconciliation of role bindings.

Role bindings have no update verb in the metadata service API. They are
bound, looked up, and unbound; changing any attribute replaces the binding.
The composite identity from `confluentresourceoperator.identity` is the
caller's only handle on a binding, so reads and deletes work from the
identity alone.
"""

from __future__ import annotations

__all__ = (
    "BindingObservation",
    "BindingSpec",
    "ClusterRoleBindingSpec",
    "ResourceRoleBindingSpec",
    "RoleBindingReconciler",
)

from dataclasses import dataclass
from typing import Any

import structlog

from confluentresourceoperator.errors import (
    DriftDetected,
    ResourceNotFound,
    ValidationError,
    resource_context,
)
from confluentresourceoperator.gateway import ClusterGateway
from confluentresourceoperator.identity import (
    DEFAULT_RESOURCE_TYPES,
    Binding,
    ClusterLevelBinding,
    PatternScopedBinding,
    PatternType,
    ResourcePattern,
    decode_identity,
    encode_identity,
    resolve_scope,
)


@dataclass(frozen=True)
class ClusterRoleBindingSpec:
    """Desired state of a role bound on a whole cluster or sub-cluster.

    Parameters
    ----------
    principal : `str`
        ``User:<name>`` or ``Group:<name>``.
    role : `str`
        One of `~confluentresourceoperator.identity.CLUSTER_ROLES`.
    cluster_id : `str`
        The Kafka cluster id.
    cluster_type : `str`, optional
        ``Kafka``, ``SchemaRegistry``, ``Connect`` or ``KSQL``. Inferred
        from the sub-cluster id when not set.
    schema_registry_cluster_id : `str`
        Schema Registry cluster id, for a SchemaRegistry binding.
    connect_cluster_id : `str`
        Kafka Connect cluster id, for a Connect binding.
    ksql_cluster_id : `str`
        ksqlDB cluster id, for a KSQL binding.
    """

    principal: str
    role: str
    cluster_id: str
    cluster_type: str | None = None
    schema_registry_cluster_id: str = ""
    connect_cluster_id: str = ""
    ksql_cluster_id: str = ""

    def to_binding(self) -> ClusterLevelBinding:
        scope = resolve_scope(
            self.cluster_id,
            cluster_type=self.cluster_type,
            schema_registry_cluster_id=self.schema_registry_cluster_id,
            connect_cluster_id=self.connect_cluster_id,
            ksql_cluster_id=self.ksql_cluster_id,
        )
        return ClusterLevelBinding(
            scope=scope, principal=self.principal, role=self.role
        )


@dataclass(frozen=True)
class ResourceRoleBindingSpec:
    """Desired state of a role bound on a resource pattern.

    Parameters
    ----------
    principal : `str`
        ``User:<name>`` or ``Group:<name>``.
    role : `str`
        One of `~confluentresourceoperator.identity.SCOPE_ROLES`.
    cluster_id : `str`
        The Kafka cluster id.
    name : `str`
        The resource name, or name prefix.
    pattern_type : `str`
        ``LITERAL`` or ``PREFIXED``.
    resource_type : `str`, optional
        The resource type. Defaults to ``Subject`` on a Schema Registry and
        ``Connector`` on a Connect cluster; required on Kafka itself
        (``Topic``, ``Group``, ``TransactionalId`` or ``Cluster``).
    schema_registry_cluster_id : `str`
        Schema Registry cluster id, for subject bindings.
    connect_cluster_id : `str`
        Kafka Connect cluster id, for connector bindings.
    ksql_cluster_id : `str`
        ksqlDB cluster id.
    """

    principal: str
    role: str
    cluster_id: str
    name: str
    pattern_type: str = PatternType.LITERAL.value
    resource_type: str | None = None
    schema_registry_cluster_id: str = ""
    connect_cluster_id: str = ""
    ksql_cluster_id: str = ""

    def to_binding(self) -> PatternScopedBinding:
        scope = resolve_scope(
            self.cluster_id,
            schema_registry_cluster_id=self.schema_registry_cluster_id,
            connect_cluster_id=self.connect_cluster_id,
            ksql_cluster_id=self.ksql_cluster_id,
        )
        resource_type = self.resource_type or DEFAULT_RESOURCE_TYPES.get(
            scope.cluster_type
        )
        if not resource_type:
            raise ValidationError(
                f"resource_type is required for a {scope.cluster_type.value} "
                "resource binding"
            )
        try:
            pattern_type = PatternType(self.pattern_type)
        except ValueError as err:
            raise ValidationError(
                "pattern_type must be LITERAL or PREFIXED, got: "
                f"{self.pattern_type}"
            ) from err
        return PatternScopedBinding(
            scope=scope,
            principal=self.principal,
            role=self.role,
            pattern=ResourcePattern(resource_type, self.name, pattern_type),
        )


BindingSpec = ClusterRoleBindingSpec | ResourceRoleBindingSpec


@dataclass(frozen=True)
class BindingObservation:
    """A binding confirmed to exist, with the patterns the lookup returned."""

    binding: Binding
    patterns: tuple[ResourcePattern, ...]


def _pattern_of(binding: Binding) -> ResourcePattern | None:
    if isinstance(binding, PatternScopedBinding):
        return binding.pattern
    return None


class RoleBindingReconciler:
    """Create, read, replace and delete role bindings through a gateway.

    Parameters
    ----------
    gateway : `ClusterGateway`
        The cluster management API.
    logger : optional
        Logger to use. If not provided, a structlog logger is used.
    """

    def __init__(
        self, gateway: ClusterGateway, *, logger: Any | None = None
    ) -> None:
        self.gateway = gateway
        self.logger = logger or structlog.getLogger(__name__)

    def create(self, desired: BindingSpec) -> str:
        """Bind the role and return the binding's composite identity."""
        binding = desired.to_binding()
        identity = encode_identity(binding)
        self.logger.info(f"Binding {identity}")
        with resource_context(identity):
            self.gateway.bind(
                binding.principal,
                binding.role,
                binding.scope,
                _pattern_of(binding),
            )
        return identity

    def read(self, identity: str) -> BindingObservation:
        """Confirm that the binding still exists on the cluster.

        Raises
        ------
        MalformedIdentity
            Raised if ``identity`` cannot be decoded.
        DriftDetected
            Raised if the lookup does not return the binding, or returns its
            resource with a different pattern type.
        """
        binding = decode_identity(identity)
        with resource_context(identity):
            patterns = self.gateway.lookup_binding(
                binding.principal, binding.role, binding.scope
            )
            if not patterns:
                raise DriftDetected(
                    f"{binding.principal} no longer holds {binding.role}"
                )
            if isinstance(binding, PatternScopedBinding):
                wanted = binding.pattern
                found = any(
                    pattern.resource_type == wanted.resource_type
                    and pattern.name == wanted.name
                    and pattern.pattern_type == wanted.pattern_type
                    for pattern in patterns
                )
                if not found:
                    raise DriftDetected(
                        f"cannot find {wanted.resource_type} {wanted.name} "
                        f"with pattern type {wanted.pattern_type.value}"
                    )
        return BindingObservation(binding=binding, patterns=tuple(patterns))

    def update(
        self, identity: str, old: BindingSpec, new: BindingSpec
    ) -> str:
        """Replace a binding, returning the new identity.

        Bindings are immutable, so any change unbinds ``identity`` and then
        binds ``new``. The new binding is validated before anything is
        unbound.
        """
        new_identity = encode_identity(new.to_binding())
        if new_identity == identity:
            return identity
        self.logger.info(
            f"Replacing binding of {old.role} to {old.principal} with "
            f"{new_identity}"
        )
        self.delete(identity)
        return self.create(new)

    def delete(self, identity: str) -> None:
        """Unbind the role. A binding that is already gone is not an error."""
        binding = decode_identity(identity)
        self.logger.info(f"Unbinding {identity}")
        with resource_context(identity):
            try:
                self.gateway.unbind(
                    binding.principal,
                    binding.role,
                    binding.scope,
                    _pattern_of(binding),
                )
            except ResourceNotFound:
                self.logger.info(f"Binding {identity} is already removed")
