from typing import Callable, Protocol, runtime_checkable


@runtime_checkable
class RandomSource(Protocol):
    """
    Seedable uniform random capability injected into every stochastic component.
    """

    def random(self) -> float:
        """Next value in [0, 1)."""
        ...


# (stage, percent 0-100)
ProgressCallback = Callable[[str, int], None]
