import time


def _retry(fn, should_retry, tries=2, base_delay=0.2, sleep=time.sleep):
    """Exponential backoff on a result predicate. Returns the last result."""
    result = fn()
    for i in range(1, tries):
        if not should_retry(result):
            break
        sleep(base_delay * (2 ** (i - 1)))
        result = fn()
    return result
