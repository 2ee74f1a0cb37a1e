"""Exception hierarchy shared by schema import and query execution."""


class OpenApiTablesError(Exception):
    """Base class for all errors raised by openapi-tables."""


class ConfigError(OpenApiTablesError):
    """Invalid or incomplete server/table options."""


# --- schema import -----------------------------------------------------------


class SpecError(OpenApiTablesError):
    """The OpenAPI document cannot be imported.

    ``path`` is the JSON pointer of the offending node inside the document.
    """

    def __init__(self, message: str, path: str = ""):
        self.path = path
        if path:
            message = f"{message} (at {path})"
        super().__init__(message)


class SpecParseError(SpecError):
    """The document is not valid JSON/YAML or has the wrong shape."""


class UnsupportedVersionError(SpecError):
    """The document is not an OpenAPI 3.x document."""


class UnresolvedReferenceError(SpecError):
    """A ``$ref`` points to a node that does not exist."""

    def __init__(self, ref: str, path: str = ""):
        self.ref = ref
        super().__init__(f"Unresolved reference '{ref}'", path)


class CyclicReferenceError(SpecError):
    """A chain of ``$ref`` pointers loops back on itself."""

    def __init__(self, chain: list[str], path: str = ""):
        self.chain = chain
        super().__init__(f"Cyclic reference: {' -> '.join(chain)}", path)


class InvalidCompositionError(SpecError):
    """``allOf`` combines schemas that cannot be merged into one object."""


# --- query execution ---------------------------------------------------------


class QueryError(OpenApiTablesError):
    """A single query cannot be executed."""


class MissingPathParameterError(QueryError):
    """The endpoint template has a placeholder with no matching predicate."""

    def __init__(self, name: str, endpoint: str = ""):
        self.name = name
        self.endpoint = endpoint
        super().__init__(
            f"Missing required path parameter '{name}'"
            + (f" for endpoint '{endpoint}'" if endpoint else "")
            + f"; add WHERE {name} = <value>"
        )


class ApiStatusError(QueryError):
    """The API answered with a non-success status code."""

    def __init__(self, status_code: int, url: str, body: str = ""):
        self.status_code = status_code
        self.url = url
        self.body = body
        snippet = body[:200]
        super().__init__(f"HTTP {status_code} from {url}" + (f": {snippet}" if snippet else ""))


class ExtractionError(OpenApiTablesError):
    """Rows cannot be extracted from a response page."""


class PathNotFoundError(ExtractionError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Path '{path}' not found in response")


class NoArrayFoundError(ExtractionError):
    pass


class RowNotObjectError(ExtractionError):
    def __init__(self, value_type: str):
        self.value_type = value_type
        super().__init__(f"Expected each row to be a JSON object, got {value_type}")


class RateLimitError(OpenApiTablesError):
    """Throttling by the remote API."""

    retryable = True


class RateLimitExhaustedError(RateLimitError):
    def __init__(self, attempts: int, url: str = ""):
        self.attempts = attempts
        self.url = url
        super().__init__(
            f"Rate limit exceeded after {attempts} retries"
            + (f" for {url}" if url else "")
            + "; the query can be re-run later"
        )
