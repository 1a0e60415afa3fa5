"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidAmount(DomainException):
    """Monetary input is malformed, imprecise, or not positive where it must be"""

    pass


class InvalidStateTransition(DomainException):
    """Requested status change is not allowed from the current state"""

    pass


class ConcurrentModification(DomainException):
    """Shared balance state changed underneath us and retries were exhausted"""

    pass


class ResourceNotFound(DomainException):
    """Referenced entity does not exist"""

    def __init__(self, resource: str, resource_id):
        super().__init__(f"{resource} not found: {resource_id}")
        self.resource = resource
        self.resource_id = resource_id


class CreditLimitExceeded(DomainException):
    """Proposed charge would take the client past its credit limit"""

    def __init__(self, client_id, excess):
        super().__init__(f"Client {client_id} would exceed credit limit by {excess}")
        self.client_id = client_id
        self.excess = excess


class DuplicateResource(DomainException):
    """Unique business key already in use"""

    pass


class BusinessValidationError(DomainException):
    """Request is well-formed but violates a business rule"""

    pass
