"""Test doubles shared across the suite."""

PRIVATE_KEY = "private_test_key"
PUBLIC_KEY = "public_test_key"

# Start of a 10-second window, so tests never straddle a boundary by accident
WINDOW_START = 1_700_000_000.0


class FakeClock:
    """Controllable time source for the limiter and issuer."""

    def __init__(self, now: float = WINDOW_START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
