"""Composite identities for role bindings.

A role binding is addressed by its scope, principal, role and (for
resource-level bindings) a resource pattern. These are joined with ``|`` into
a single opaque identity string that the caller stores as its durable handle
on the binding. The encoding is lossless: ``decode_identity`` inverts
``encode_identity`` for every binding that passes validation.
"""

from __future__ import annotations

__all__ = (
    "CLUSTER_ROLES",
    "DEFAULT_RESOURCE_TYPES",
    "SCOPE_ROLES",
    "Binding",
    "ClusterLevelBinding",
    "ClusterType",
    "PatternScopedBinding",
    "PatternType",
    "ResourcePattern",
    "ResourceScope",
    "decode_identity",
    "encode_identity",
    "resolve_scope",
    "validate_binding",
    "validate_principal",
)

import enum
from dataclasses import dataclass

from confluentresourceoperator.errors import MalformedIdentity, ValidationError

DELIMITER = "|"
"""Separator between identity tokens. No identity field may contain it."""

SUB_CLUSTER_SEPARATOR = ":"
"""Separator between a cluster type and its sub-cluster id."""

PRINCIPAL_PREFIXES = ("User:", "Group:")

CLUSTER_ROLES = (
    "AuditAdmin",
    "ClusterAdmin",
    "DeveloperManage",
    "DeveloperRead",
    "DeveloperWrite",
    "Operator",
    "ResourceOwner",
    "SecurityAdmin",
    "SystemAdmin",
    "UserAdmin",
)
"""Roles that can be bound on a whole cluster."""

SCOPE_ROLES = (
    "DeveloperRead",
    "DeveloperWrite",
    "DeveloperManage",
    "ResourceOwner",
)
"""Roles that can be bound on a resource pattern."""


class ClusterType(str, enum.Enum):
    """The subsystem a scope addresses."""

    KAFKA = "Kafka"
    SCHEMA_REGISTRY = "SchemaRegistry"
    CONNECT = "Connect"
    KSQL = "KSQL"


class PatternType(str, enum.Enum):
    """How a resource pattern name is matched."""

    LITERAL = "LITERAL"
    PREFIXED = "PREFIXED"


DEFAULT_RESOURCE_TYPES = {
    ClusterType.SCHEMA_REGISTRY: "Subject",
    ClusterType.CONNECT: "Connector",
}
"""Resource type bound by pattern-scoped bindings on each sub-cluster."""

# Cluster type labels accepted when decoding, besides the enum values.
# Connector bindings were historically written as ``ConnectClusterId:<id>``.
_CLUSTER_TYPE_ALIASES = {
    "ConnectClusterId": ClusterType.CONNECT,
}

# The remote API's names for each cluster in a scope.
_CLUSTER_DETAIL_KEYS = {
    ClusterType.SCHEMA_REGISTRY: "schema-registry-cluster",
    ClusterType.CONNECT: "connect-cluster",
    ClusterType.KSQL: "ksql-cluster",
}


@dataclass(frozen=True)
class ResourceScope:
    """The cluster, and optionally the sub-cluster, a binding applies to.

    Raises
    ------
    ValidationError
        Raised if a Kafka scope carries a sub-cluster id or any other scope
        lacks one.
    """

    cluster_type: ClusterType
    cluster_id: str
    sub_cluster_id: str = ""

    def __post_init__(self) -> None:
        if not self.cluster_id:
            raise ValidationError("cluster_id is required")
        if self.cluster_type is ClusterType.KAFKA:
            if self.sub_cluster_id:
                raise ValidationError(
                    "a Kafka scope cannot carry a sub-cluster id, got "
                    f"{self.sub_cluster_id}"
                )
        elif not self.sub_cluster_id:
            raise ValidationError(
                f"a {self.cluster_type.value} scope requires a sub-cluster id"
            )

    def cluster_details(self) -> dict[str, dict[str, str]]:
        """Render the scope as the remote API's cluster-details record."""
        clusters = {"kafka-cluster": self.cluster_id}
        if self.cluster_type is not ClusterType.KAFKA:
            key = _CLUSTER_DETAIL_KEYS[self.cluster_type]
            clusters[key] = self.sub_cluster_id
        return {"clusters": clusters}


@dataclass(frozen=True)
class ResourcePattern:
    """A named resource (or prefix of names) a binding is narrowed to."""

    resource_type: str
    name: str
    pattern_type: PatternType = PatternType.LITERAL


@dataclass(frozen=True)
class ClusterLevelBinding:
    """A role bound on an entire cluster or sub-cluster."""

    scope: ResourceScope
    principal: str
    role: str


@dataclass(frozen=True)
class PatternScopedBinding:
    """A role bound on a resource pattern within a cluster or sub-cluster."""

    scope: ResourceScope
    principal: str
    role: str
    pattern: ResourcePattern


Binding = ClusterLevelBinding | PatternScopedBinding


def validate_principal(principal: str) -> None:
    """Check that a principal is ``User:`` or ``Group:`` qualified and
    free of the identity delimiter.

    Raises
    ------
    ValidationError
        Raised if the principal is not acceptable.
    """
    if not principal.startswith(PRINCIPAL_PREFIXES) or DELIMITER in principal:
        raise ValidationError(
            "principal must be defined with User: or Group: and must not "
            f"contain {DELIMITER}, got: {principal}"
        )


def _validate_token(value: str, field: str) -> None:
    if not value:
        raise ValidationError(f"{field} must not be empty")
    if DELIMITER in value:
        raise ValidationError(
            f"{field} must not contain {DELIMITER}, got: {value}"
        )


def validate_binding(binding: Binding) -> None:
    """Check every field of a binding before it is bound or encoded.

    Raises
    ------
    ValidationError
        Raised for a bad principal, a role that is not valid for the kind of
        binding, or any field containing the identity delimiter.
    """
    validate_principal(binding.principal)
    scope = binding.scope
    _validate_token(scope.cluster_id, "cluster_id")
    if scope.sub_cluster_id:
        _validate_token(scope.sub_cluster_id, "sub_cluster_id")

    if isinstance(binding, PatternScopedBinding):
        allowed_roles = SCOPE_ROLES
        _validate_token(binding.pattern.resource_type, "resource_type")
        _validate_token(binding.pattern.name, "name")
    else:
        allowed_roles = CLUSTER_ROLES
    if binding.role not in allowed_roles:
        raise ValidationError(
            f"role must be one of {', '.join(allowed_roles)}, "
            f"got: {binding.role}"
        )


def encode_identity(binding: Binding) -> str:
    """Encode a binding as its composite identity string.

    Parameters
    ----------
    binding : `ClusterLevelBinding` or `PatternScopedBinding`
        The binding to encode.

    Returns
    -------
    identity : `str`
        One of the shapes::

            Kafka|<cluster>|<principal>|<role>
            <type>:<sub>|<cluster>|<principal>|<role>
            <cluster>|<principal>|<role>|<resourceType>|<name>|<patternType>
            <cluster>|<type>:<sub>|<principal>|<role>|<resourceType>|<name>|<patternType>

    Raises
    ------
    ValidationError
        Raised if the binding fails `validate_binding`.
    """
    validate_binding(binding)
    scope = binding.scope

    if isinstance(binding, ClusterLevelBinding):
        tokens = [
            _format_cluster_token(scope),
            scope.cluster_id,
            binding.principal,
            binding.role,
        ]
    else:
        tokens = [scope.cluster_id]
        if scope.cluster_type is not ClusterType.KAFKA:
            tokens.append(_format_cluster_token(scope))
        tokens.extend(
            [
                binding.principal,
                binding.role,
                binding.pattern.resource_type,
                binding.pattern.name,
                binding.pattern.pattern_type.value,
            ]
        )
    return DELIMITER.join(tokens)


def decode_identity(identity: str) -> Binding:
    """Decode a composite identity string back into a binding.

    Parameters
    ----------
    identity : `str`
        An identity produced by `encode_identity`.

    Returns
    -------
    binding : `ClusterLevelBinding` or `PatternScopedBinding`
        The decoded binding.

    Raises
    ------
    MalformedIdentity
        Raised if the token count matches no known shape, the cluster token
        is malformed, or the decoded fields fail validation.
    """
    tokens = identity.split(DELIMITER)
    if len(tokens) < 4:
        raise MalformedIdentity(
            f"identity has {len(tokens)} tokens, expected at least 4",
            resource=identity,
        )

    try:
        binding: Binding
        if len(tokens) == 4:
            cluster_token, cluster_id, principal, role = tokens
            cluster_type, sub_cluster_id = _parse_cluster_token(cluster_token)
            binding = ClusterLevelBinding(
                scope=ResourceScope(cluster_type, cluster_id, sub_cluster_id),
                principal=principal,
                role=role,
            )
        elif len(tokens) == 6:
            cluster_id, principal, role = tokens[:3]
            binding = PatternScopedBinding(
                scope=ResourceScope(ClusterType.KAFKA, cluster_id),
                principal=principal,
                role=role,
                pattern=_parse_pattern(tokens[3:]),
            )
        elif len(tokens) == 7:
            cluster_id, cluster_token, principal, role = tokens[:4]
            if SUB_CLUSTER_SEPARATOR not in cluster_token:
                raise MalformedIdentity(
                    f"expected <type>:<sub-cluster id>, got {cluster_token}"
                )
            cluster_type, sub_cluster_id = _parse_cluster_token(cluster_token)
            binding = PatternScopedBinding(
                scope=ResourceScope(cluster_type, cluster_id, sub_cluster_id),
                principal=principal,
                role=role,
                pattern=_parse_pattern(tokens[4:]),
            )
        else:
            raise MalformedIdentity(
                f"identity has {len(tokens)} tokens, expected 4, 6 or 7"
            )
        validate_binding(binding)
    except MalformedIdentity as err:
        err.resource = identity
        raise
    except ValidationError as err:
        raise MalformedIdentity(err.message, resource=identity) from err
    return binding


def resolve_scope(
    cluster_id: str,
    *,
    cluster_type: str | ClusterType | None = None,
    schema_registry_cluster_id: str | None = None,
    connect_cluster_id: str | None = None,
    ksql_cluster_id: str | None = None,
) -> ResourceScope:
    """Build the scope of a binding from its desired-state fields.

    Parameters
    ----------
    cluster_id : `str`
        The Kafka cluster id.
    cluster_type : `str` or `ClusterType`, optional
        The explicit cluster type. If not set, the type is inferred from
        whichever sub-cluster id is set, or Kafka if none is.
    schema_registry_cluster_id : `str`, optional
        The Schema Registry cluster id.
    connect_cluster_id : `str`, optional
        The Kafka Connect cluster id.
    ksql_cluster_id : `str`, optional
        The ksqlDB cluster id.

    Returns
    -------
    scope : `ResourceScope`
        The resolved scope.

    Raises
    ------
    ValidationError
        Raised if more than one sub-cluster id is set, or the sub-cluster id
        that the cluster type needs is missing.
    """
    candidates = {
        ClusterType.SCHEMA_REGISTRY: (
            "schema_registry_cluster_id",
            schema_registry_cluster_id,
        ),
        ClusterType.CONNECT: ("connect_cluster_id", connect_cluster_id),
        ClusterType.KSQL: ("ksql_cluster_id", ksql_cluster_id),
    }
    provided = {
        sub_type: value
        for sub_type, (_, value) in candidates.items()
        if value
    }
    if len(provided) > 1:
        raise ValidationError(
            "cannot specify schema_registry_cluster_id, connect_cluster_id "
            "and ksql_cluster_id at the same time"
        )

    if cluster_type is None:
        if not provided:
            return ResourceScope(ClusterType.KAFKA, cluster_id)
        ((resolved_type, sub_cluster_id),) = provided.items()
        return ResourceScope(resolved_type, cluster_id, sub_cluster_id)

    try:
        resolved_type = ClusterType(cluster_type)
    except ValueError as err:
        raise ValidationError(
            "cluster_type must be one of "
            f"{', '.join(t.value for t in ClusterType)}, got: {cluster_type}"
        ) from err

    if resolved_type is ClusterType.KAFKA:
        if provided:
            raise ValidationError(
                "a Kafka cluster_type does not take a sub-cluster id"
            )
        return ResourceScope(resolved_type, cluster_id)

    field_name, sub_cluster_id = candidates[resolved_type]
    if not sub_cluster_id:
        raise ValidationError(f"missing parameter: {field_name}")
    return ResourceScope(resolved_type, cluster_id, sub_cluster_id)


def _format_cluster_token(scope: ResourceScope) -> str:
    if scope.cluster_type is ClusterType.KAFKA:
        return scope.cluster_type.value
    return (
        f"{scope.cluster_type.value}{SUB_CLUSTER_SEPARATOR}"
        f"{scope.sub_cluster_id}"
    )


def _parse_cluster_token(token: str) -> tuple[ClusterType, str]:
    label, separator, sub_cluster_id = token.partition(SUB_CLUSTER_SEPARATOR)
    if label in _CLUSTER_TYPE_ALIASES:
        cluster_type = _CLUSTER_TYPE_ALIASES[label]
    else:
        try:
            cluster_type = ClusterType(label)
        except ValueError as err:
            raise MalformedIdentity(f"unknown cluster type {label}") from err

    if cluster_type is ClusterType.KAFKA:
        if separator:
            raise MalformedIdentity(
                f"a Kafka cluster token cannot carry a sub-cluster id: {token}"
            )
    elif not sub_cluster_id:
        raise MalformedIdentity(f"missing sub-cluster id in {token}")
    return cluster_type, sub_cluster_id


def _parse_pattern(tokens: list[str]) -> ResourcePattern:
    resource_type, name, pattern_type = tokens
    try:
        return ResourcePattern(resource_type, name, PatternType(pattern_type))
    except ValueError as err:
        raise MalformedIdentity(
            f"unknown pattern type {pattern_type}"
        ) from err
