from __future__ import annotations


class AuthenticationError(RuntimeError):
    pass


class ConfigurationError(AuthenticationError):
    pass


class ServiceConfigurationError(AuthenticationError):
    pass


class TokenRequestError(AuthenticationError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RevocationError(AuthenticationError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthorizationError(AuthenticationError):
    """OAuth error returned to the redirect URI instead of a code."""

    def __init__(
        self,
        error: str,
        error_description: str | None = None,
        error_uri: str | None = None,
        state: str | None = None,
    ) -> None:
        message = error if not error_description else f"{error}: {error_description}"
        super().__init__(message)
        self.error = error
        self.error_description = error_description
        self.error_uri = error_uri
        self.state = state
