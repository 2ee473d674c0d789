"""Exception types shared across the deliberation core."""


class InferenceError(Exception):
    """Raised when an agent's underlying judgment call fails."""

    def __init__(self, agent: str, message: str) -> None:
        self.agent = agent
        super().__init__(f"[{agent}] {message}")


class NoQuorumError(Exception):
    """Raised when every agent in every phase of a deliberation failed."""

    def __init__(self, case_id: str, attempted: list[str]) -> None:
        self.case_id = case_id
        self.attempted = attempted
        super().__init__(
            f"No agent produced a result for case {case_id} "
            f"({len(attempted)} attempted: {', '.join(attempted)})"
        )
