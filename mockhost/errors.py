"""Mock host error taxonomy surfaced to HTTP and CLI callers."""


class MockHostError(Exception):
    """Base error carrying a stable code and HTTP status."""

    error_code = "UNKNOWN_IO"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, str]:
        return {"error": self.message, "code": self.error_code}


class InvalidPort(MockHostError):
    """Requested port is outside the allowed range."""

    error_code = "INVALID_PORT"
    status_code = 400

    def __init__(self, port: object):
        super().__init__("Invalid port. Port must be between 9001 and 9999.")
        self.port = port


class PortInUse(MockHostError):
    """Port is registered or occupied at the OS level."""

    error_code = "PORT_IN_USE"
    status_code = 400

    def __init__(self, port: int):
        super().__init__(f"Port {port} is already in use.")
        self.port = port


class ConfigNotFound(MockHostError):
    error_code = "CONFIG_NOT_FOUND"
    status_code = 404

    def __init__(self, name: str):
        super().__init__("Configuration file not found")
        self.name = name


class DuplicateName(MockHostError):
    error_code = "DUPLICATE_NAME"
    status_code = 409

    def __init__(self, name: str):
        super().__init__(
            "A configuration with this name already exists. "
            "Please upload with a different filename."
        )
        self.name = name


class InvalidFormat(MockHostError):
    """Upload is not a JSON document or exceeds the size ceiling."""

    error_code = "INVALID_FORMAT"
    status_code = 400


class InstanceNotFound(MockHostError):
    error_code = "INSTANCE_NOT_FOUND"
    status_code = 404

    def __init__(self, port: int):
        super().__init__("Instance not found")
        self.port = port


class ConfigInUse(MockHostError):
    error_code = "CONFIG_IN_USE"
    status_code = 400

    def __init__(self, name: str):
        super().__init__("Configuration is currently in use by a running mock server")
        self.name = name


class SpawnFailed(MockHostError):
    """The mock server process could not be launched or died on startup."""

    error_code = "SPAWN_FAILED"
    status_code = 500


class UnknownIO(MockHostError):
    """Unexpected filesystem or OS failure."""

    error_code = "UNKNOWN_IO"
    status_code = 500
