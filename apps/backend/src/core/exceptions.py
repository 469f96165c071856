class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class UnknownAccountError(DomainError):
    """Exception raised when an account id is not in the configured account list."""

    pass


class OAuthStateError(DomainError):
    """Exception raised when an OAuth callback carries an invalid or expired state."""

    pass


class AuthorizationError(DomainError):
    """Exception raised when the provider rejects an authorization code exchange."""

    pass


class PageNotFoundError(DomainError):
    """Exception raised when a page file does not exist in the repository."""

    pass


class RepositoryError(DomainError):
    """Exception raised when the repository host rejects a request."""

    pass


class UpstreamStreamError(DomainError):
    """Exception raised when the generation service reports an error mid-stream."""

    pass


class UpstreamStatusError(UpstreamStreamError):
    """Exception raised when the generation service answers with a non-success status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Generation service returned {status_code}: {message}")
        self.status_code = status_code


class InvalidPagePathError(DomainError):
    """Exception raised when a site path would escape the site root directory."""

    pass
