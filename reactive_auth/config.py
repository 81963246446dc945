"""Configuration for reactive-auth."""

from dataclasses import dataclass

CONTEXT_RELEASED_POLICIES = ("fail", "stall")


@dataclass
class AuthStreamConfig:
    """
    Configuration for the ReactiveAuth adapter.

    Attributes:
        stream_buffer_size: Maximum number of undelivered notifications kept per
            listener stream. 0 means unbounded. When full, the oldest
            notification is dropped.
        on_context_released: What an operation does when the wrapped client has
            been garbage collected before activation. "fail" raises
            ContextUnavailableError, "stall" never terminates.

    Example:
        ```python
        config = AuthStreamConfig(stream_buffer_size=32)
        auth = ReactiveAuth(client, config)
        ```
    """

    stream_buffer_size: int = 0
    on_context_released: str = "fail"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.stream_buffer_size < 0:
            raise ValueError("stream_buffer_size must be non-negative")

        if self.on_context_released not in CONTEXT_RELEASED_POLICIES:
            raise ValueError(
                "on_context_released must be one of: "
                + ", ".join(CONTEXT_RELEASED_POLICIES)
            )
