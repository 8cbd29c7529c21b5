"""Network configuration constants for the quiz server."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 3000
# A websocket send that does not finish in time drops that observer.
SEND_TIMEOUT_SECONDS: float = 5.0
