"""
Erreurs métier du processor.
- BriqpayError porte un status_code HTTP et un code stable pour le client.
- Les sous-classes couvrent la taxonomie: configuration, validation, session, upstream, opération.
- PlatformError représente un échec de l'API commercetools (code ResourceNotFound sur 404).
"""
from typing import Optional


class BriqpayError(Exception):
    def __init__(self, message: str, status_code: int = 500, code: str = "INTERNAL_SERVER_ERROR"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class ConfigurationError(BriqpayError):
    def __init__(self, message: str):
        super().__init__(message, 500, "CONFIGURATION_ERROR")


class SessionError(BriqpayError):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message, status_code, "SESSION_ERROR")


class ValidationError(BriqpayError):
    def __init__(self, message: str):
        super().__init__(message, 400, "VALIDATION_ERROR")


class UpstreamError(BriqpayError):
    def __init__(self, message: str, cause: Optional[BaseException] = None, status: Optional[int] = None, body: str = ""):
        super().__init__(message, 502, "UPSTREAM_ERROR")
        self.cause = cause
        self.upstream_status = status
        self.upstream_body = body
        if cause is not None:
            self.__cause__ = cause


class InvalidOperationError(BriqpayError):
    """Précondition de cycle de vie non respectée (déjà capturé, déjà remboursé...)."""
    def __init__(self, message: str):
        super().__init__(message, 400, "INVALID_OPERATION")


RESOURCE_NOT_FOUND = "ResourceNotFound"


class PlatformError(BriqpayError):
    def __init__(self, message: str, status_code: int = 502, code: str = "PLATFORM_ERROR", body: Optional[dict] = None):
        super().__init__(message, status_code, code)
        self.body = body or {}

    @property
    def is_not_found(self) -> bool:
        return self.code == RESOURCE_NOT_FOUND
