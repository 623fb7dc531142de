"""
Adversarial tests for timing oracle attack prevention.

Verifies that signin failures for unknown usernames and for wrong passwords
have statistically similar response times, preventing attackers from
enumerating usernames through timing analysis.

Both paths run one bcrypt comparison: unknown usernames are checked
against a dummy hash of the same cost.
"""

import statistics
import time

import pytest

from waypost.domain.credentials import CredentialService
from waypost.domain.exceptions import InvalidCredentialsError

pytestmark = pytest.mark.adversarial


class TestTimingAttacks:
    """
    Verify constant-time behavior prevents timing oracle attacks.

    These tests measure signin times for different failure scenarios
    and verify they are statistically indistinguishable.
    """

    # Number of measurements per scenario for statistical significance
    ITERATIONS = 20

    # Maximum allowed difference in mean times
    MAX_VARIANCE_RATIO = 0.20

    def measure_time(self, service: CredentialService, username: str, password: str) -> float:
        """Measure execution time for a single failing signin call."""
        start = time.perf_counter()
        with pytest.raises(InvalidCredentialsError):
            service.signin(username, password)
        return time.perf_counter() - start

    def assert_timing_similar(
        self,
        times1: list[float],
        times2: list[float],
        label1: str,
        label2: str,
    ) -> None:
        """Assert two timing distributions are statistically similar."""
        mean1 = statistics.mean(times1)
        mean2 = statistics.mean(times2)

        ratio = abs(mean1 - mean2) / max(mean1, mean2)

        assert ratio < self.MAX_VARIANCE_RATIO, (
            f"Timing difference too large between {label1} and {label2}: "
            f"{ratio:.1%} (threshold: {self.MAX_VARIANCE_RATIO:.0%})\n"
            f"  {label1}: mean={mean1:.4f}s, stdev={statistics.stdev(times1):.4f}s\n"
            f"  {label2}: mean={mean2:.4f}s, stdev={statistics.stdev(times2):.4f}s"
        )

    def test_unknown_username_timing_similar_to_wrong_password(
        self, pg_service: CredentialService, signup_user
    ) -> None:
        """
        Unknown username timing should be similar to a known username with a wrong password.

        This is the primary timing oracle attack: comparing "user not found"
        vs "user exists but password wrong" to enumerate usernames.
        """
        signup_user("known")

        unknown_times = [
            self.measure_time(pg_service, f"unknown{i}", "password123")
            for i in range(self.ITERATIONS)
        ]
        wrong_password_times = [
            self.measure_time(pg_service, "known", f"wrong-password-{i}")
            for i in range(self.ITERATIONS)
        ]

        self.assert_timing_similar(
            unknown_times,
            wrong_password_times,
            "unknown_username",
            "known_username_wrong_password",
        )
