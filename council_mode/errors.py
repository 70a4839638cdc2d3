"""Council Mode error taxonomy."""


class CouncilError(Exception):
    """Base class for council pipeline failures."""

    def __init__(self, message: str, code: str, recoverable: bool = True) -> None:
        self.code = code
        self.recoverable = recoverable
        super().__init__(message)


class TierLimitExceeded(CouncilError):
    """The user's tier has no council queries left today. Raised before dispatch."""

    def __init__(self, tier: str, limit: int | str) -> None:
        self.tier = tier
        self.limit = limit
        super().__init__(
            f"Council mode limit reached for {tier} tier ({limit}/day)",
            "TIER_LIMIT_EXCEEDED",
            recoverable=False,
        )


class ModelTimeout(CouncilError):
    def __init__(self, model_id: str, timeout_ms: int) -> None:
        self.model_id = model_id
        self.timeout_ms = timeout_ms
        super().__init__(f"Model {model_id} timed out after {timeout_ms}ms", "MODEL_TIMEOUT")


class InsufficientResponses(CouncilError):
    """Too few models succeeded to synthesize; the caller must fall back."""

    def __init__(self, received: int, required: int) -> None:
        self.received = received
        self.required = required
        super().__init__(
            f"Only {received} model(s) responded, need at least {required} for synthesis",
            "INSUFFICIENT_RESPONSES",
        )


class InvalidTransition(CouncilError):
    def __init__(self, source: str, target: str) -> None:
        self.source = source
        self.target = target
        super().__init__(f"Cannot transition display from '{source}' to '{target}'", "INVALID_TRANSITION")
