from amplink.support.mixins import CommonEqualityMixin


class RetryStrategy:
    """ determines how long to wait before retrying a failed operation. """

    def __call__(self):
        return 0

    def reset(self):
        """ notifies the strategy that the operation succeeded. """
        pass


class ExponentialBackoffRetryStrategy(RetryStrategy, CommonEqualityMixin):
    """
    Each call returns the delay to wait before the next attempt. The first delay is the base delay,
    and each subsequent delay doubles, up to the maximum delay. There is no limit on the
    number of attempts. Calling reset() after a successful attempt restarts from the base delay.

    :param base_delay: The first delay in seconds.
    :param max_delay: The largest delay returned, in seconds.
    """

    def __init__(self, base_delay, max_delay):
        if base_delay <= 0:
            raise ValueError("base delay must be positive: %s" % base_delay)
        if max_delay < base_delay:
            raise ValueError("max delay %s is less than the base delay %s" % (max_delay, base_delay))
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.next_delay = base_delay

    def __call__(self):
        """return the length of time to wait before the next attempt, and back off the following one."""
        result = self.next_delay
        self.next_delay = min(self.next_delay * 2, self.max_delay)
        return result

    def reset(self):
        self.next_delay = self.base_delay
