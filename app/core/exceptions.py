class DatabaseError(Exception):
    """Custom exception for database related errors."""
    pass

class TenantContextError(DatabaseError):
    """Raised when a data access is attempted without a bound tenant context."""
    pass

class ConfigurationError(Exception):
    """Custom exception for configuration errors."""
    pass

class InvalidRoleArnError(ValueError):
    """Role ARN does not follow the allow-listed customer role convention."""
    pass

class RoleAssumptionError(Exception):
    """STS refused or failed to hand out credentials for the customer role."""
    pass

class AccountNotFoundError(Exception):
    """No cloud account with that identifier is visible to the tenant."""
    pass

class VolumeNotFoundError(Exception):
    pass

class VolumeInUseError(Exception):
    pass
