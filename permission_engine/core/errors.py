"""
Error taxonomy for permission resolution and administration.

"Not found" on a read is never an error: stores return None or an empty
list and the resolver treats that tier as granting nothing.
"""


class PermissionEngineError(Exception):
    """Base class for engine errors."""


class InvalidCapabilityName(PermissionEngineError, KeyError):
    """A capability name outside the fixed catalog was used."""

    def __init__(self, name: object):
        self.name = name
        super().__init__(f"Unknown capability: {name!r}")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


class StoreUnavailable(PermissionEngineError):
    """A backing store could not be read or written."""

    def __init__(self, store: str, operation: str, detail: str = ""):
        self.store = store
        self.operation = operation
        message = f"{store}.{operation} unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ResolutionError(PermissionEngineError):
    """
    Resolution could not complete.

    Callers must treat this as a denial for whatever was being checked.
    """

    def __init__(self, user_id: str, tier: str):
        self.user_id = user_id
        self.tier = tier
        super().__init__(f"Could not resolve permissions for user {user_id}: {tier} lookup failed")


class RecordNotFound(PermissionEngineError):
    """An administration operation targeted a record that does not exist."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class RoleInUseError(PermissionEngineError):
    """A role cannot be deleted while users still reference it."""

    def __init__(self, role_id: str, user_count: int):
        self.role_id = role_id
        self.user_count = user_count
        super().__init__(f"Role {role_id} is still assigned to {user_count} user(s)")
