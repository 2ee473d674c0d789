"""Abstract base for all inference gateways."""

from abc import ABC, abstractmethod

from deliberation.models import Judgment


class InferenceGateway(ABC):
    """Abstract base for all inference gateways."""

    @abstractmethod
    def name(self) -> str:
        """Return the short gateway name (e.g. 'gemini', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def analyze(
        self,
        system_context: str,
        user_context: str,
        temperature: float,
    ) -> Judgment:
        """Produce a structured judgment for the given contexts.

        Args:
            system_context: Role/persona instructions.
            user_context: The case, topic or positions to reason about.
            temperature: Sampling temperature passed to the model.

        Returns:
            Judgment with stance, arguments and confidence extracted.

        Raises:
            InferenceError: On API failure, timeout, or malformed output.
        """
        ...
