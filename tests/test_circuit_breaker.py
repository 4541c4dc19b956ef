import unittest
from unittest.mock import MagicMock, patch

from cloudrecords.api.circuit_breaker import CircuitBreaker, CircuitBreakerManager
from cloudrecords.config.api import CircuitBreakerState


class TestCircuitBreaker(unittest.TestCase):

    def setUp(self):
        self.mock_logger = MagicMock()
        # The breaker obtains its logger via logging.getLogger(__name__)
        self.logger_patch = patch("cloudrecords.api.circuit_breaker.logging.getLogger", return_value=self.mock_logger)
        self.addCleanup(self.logger_patch.stop)
        self.logger_patch.start()

        self.failure_threshold = 2
        self.recovery_timeout = 10  # seconds

        self.cb = CircuitBreaker(failure_threshold=self.failure_threshold, recovery_timeout=self.recovery_timeout)

    def test_initialization_defaults(self):
        cb = CircuitBreaker()
        self.assertEqual(cb.failure_threshold, 5)
        self.assertEqual(cb.recovery_timeout, 60)
        self.assertEqual(cb.state, CircuitBreakerState.CLOSED)
        self.assertEqual(cb.failure_count, 0)

    def test_initialization_custom_values(self):
        cb = CircuitBreaker(failure_threshold=10, recovery_timeout=120)
        self.assertEqual(cb.failure_threshold, 10)
        self.assertEqual(cb.recovery_timeout, 120)

    def test_initialization_invalid_threshold(self):
        with self.assertRaisesRegex(ValueError, "failure_threshold must be at least 1"):
            CircuitBreaker(failure_threshold=0)

    def test_success_resets_failures(self):
        self.cb.record_failure()
        self.cb.record_success()

        self.assertEqual(self.cb.failure_count, 0)
        self.assertEqual(self.cb.successful_calls, 1)
        self.assertEqual(self.cb.failed_calls, 1)
        self.assertEqual(self.cb.state, CircuitBreakerState.CLOSED)

    def test_opens_at_threshold(self):
        self.cb.record_failure()
        self.assertFalse(self.cb.is_open())
        self.assertTrue(self.cb.can_attempt())

        self.cb.record_failure()
        self.assertTrue(self.cb.is_open())
        self.assertFalse(self.cb.can_attempt())
        self.mock_logger.warning.assert_called_once()

    @patch("cloudrecords.api.circuit_breaker.time.time")
    def test_half_open_after_recovery_timeout(self, mock_time):
        mock_time.return_value = 1000.0
        self.cb.record_failure()
        self.cb.record_failure()

        mock_time.return_value = 1000.0 + self.recovery_timeout - 1
        self.assertFalse(self.cb.can_attempt())

        mock_time.return_value = 1000.0 + self.recovery_timeout
        self.assertTrue(self.cb.can_attempt())
        self.assertEqual(self.cb.state, CircuitBreakerState.HALF_OPEN)

    @patch("cloudrecords.api.circuit_breaker.time.time")
    def test_half_open_success_closes(self, mock_time):
        mock_time.return_value = 1000.0
        self.cb.record_failure()
        self.cb.record_failure()
        mock_time.return_value = 2000.0
        self.cb.can_attempt()

        self.cb.record_success()

        self.assertEqual(self.cb.state, CircuitBreakerState.CLOSED)
        self.mock_logger.info.assert_any_call(f"Circuit breaker state changed to {CircuitBreakerState.CLOSED}")

    @patch("cloudrecords.api.circuit_breaker.time.time")
    def test_half_open_failure_reopens(self, mock_time):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=10)
        mock_time.return_value = 1000.0
        for _ in range(5):
            cb.record_failure()
        mock_time.return_value = 2000.0
        self.assertTrue(cb.can_attempt())

        cb.record_failure()

        self.assertTrue(cb.is_open())
        self.assertFalse(cb.can_attempt())


class TestCircuitBreakerManager(unittest.TestCase):

    def test_breakers_are_per_endpoint(self):
        manager = CircuitBreakerManager()

        manager.get_breaker("https://a.example", failure_threshold=1)
        manager.record_failure("https://a.example")

        self.assertFalse(manager.can_attempt("https://a.example"))
        self.assertTrue(manager.can_attempt("https://b.example"))

    def test_existing_breaker_keeps_its_configuration(self):
        manager = CircuitBreakerManager()
        first = manager.get_breaker("https://a.example", failure_threshold=3)

        second = manager.get_breaker("https://a.example", failure_threshold=9)

        self.assertIs(first, second)
        self.assertEqual(second.failure_threshold, 3)

    def test_record_success(self):
        manager = CircuitBreakerManager()

        manager.record_success("https://a.example")

        self.assertEqual(manager.get_breaker("https://a.example").successful_calls, 1)


if __name__ == "__main__":
    unittest.main()
