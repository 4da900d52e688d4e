import logging
from typing import Callable, Optional

from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_none

logger = logging.getLogger(__name__)


def is_blank_result(value) -> bool:
    return value is None or not str(value).strip()


class RetryPolicy:
    """
    Bounded retry for calls whose failure shows up as a blank result
    (an empty create_link answer). ``on_retry`` runs before each extra
    attempt, typically a hard token refresh.
    """

    def __init__(self, max_retries: int = 1):
        self.max_retries = max(0, max_retries)

    def call(self, fn: Callable[[], Optional[str]], on_retry: Optional[Callable[[], object]] = None) -> Optional[str]:
        def before_retry(retry_state):
            logger.info(f"Blank result on attempt {retry_state.attempt_number}, retrying")
            if on_retry is not None:
                on_retry()

        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            retry=retry_if_result(is_blank_result),
            wait=wait_none(),
            before_sleep=before_retry,
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )
        return retrying(fn)
