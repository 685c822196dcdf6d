"""
Provides building blocks for implementing asynchronous protocols: future values for responses that have
not yet arrived, and a loop that runs on a background thread.
"""
import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future

logger = logging.getLogger(__name__)


class ResponseTimeoutError(IOError):
    """
    No response to a request was decoded within the response timeout.
    """


class FutureValue(Future):
    """ describes a value that may have not yet been computed. Callers can check if the value has arrived, or chose to
        wait until the value has arrived.
        If an exception is encountered computing the value, it is set."""

    def _value_extractor(self, value):
        """
        The value extractor allows processing of the result to arrive at the
        value returned in `value`.
        """
        return value

    def set_result_or_exception(self, value):
        """sets the result, or the exception when the value is an exception"""
        if isinstance(value, BaseException):
            self.set_exception(value)
        else:
            self.set_result(value)

    def value(self, timeout=None):
        """ allows the provider to set the result value but provide a different (derived) value to callers. """
        return self._value_extractor(self.result(timeout))


class FutureResponse(FutureValue):
    """ Relates a request and its future response."""

    def __init__(self, request):
        """
        :param request: The request this response is for.
        """
        super().__init__()
        self._request = request

    def _value_extractor(self, r):
        return r.value

    @property
    def request(self):
        return self._request

    @property
    def response_key(self):
        return self._request.response_key

    @property
    def response(self):
        """ blocking fetch of the response. Note that this retrieves
            the entire response instance, and not just the response value. """
        return self.result()

    @response.setter
    def response(self, result):
        """
        Sets the successful completion of this future result.
        :param result: The response associated with this future's request.
        """
        self.set_result(result)

    def complete(self, response):
        """ sets the response unless the caller has cancelled the future. """
        if not self.done():
            self.set_result(response)

    def fail(self, e: BaseException):
        """ sets the exception unless the future has already completed or was cancelled. """
        if not self.done():
            self.set_exception(e)

    def matches(self, response):
        return response is not None and response.response_key == self.response_key


class AsyncLoop:
    """ Continually runs a given function on a background thread.
        Exceptions are logged and posted to a given handler
        The background thread is registered as a daemon.
    """

    def __init__(self, fn: Callable=None, args=(), log=logger, name=None):
        """
        :param fn the function to run
        :param args arguments to pass to fn
        :param name the name of the background thread
        """
        self.fn = fn
        self.args = args
        self.name = name
        self.stop_event = threading.Event()
        self.background_thread = None
        self.logger = log

    def start(self):
        """
        Starts the background thread.
        """
        if self.background_thread is None:
            t = threading.Thread(target=self._run, name=self.name)
            t.daemon = True
            self.background_thread = t
            t.start()

    def exception_handler(self, e):
        self.logger.exception(e)

    def _run(self):
        """ The processing loop for the background thread.
             Invokes the callable for as long as the stop signal is not received.
        """
        self._do(self.startup)
        while self.running():
            self._do(self.loop)
        self._do(self.shutdown)
        self.logger.debug("background thread exiting")

    def _do(self, callme):
        """ runs a function and captures any exceptions """
        try:
            time.sleep(0)
            callme()
        except Exception as e:
            time.sleep(0)
            self.exception_handler(e)

    def startup(self):
        """ template method called when the thread starts"""
        pass

    def loop(self):
        self.fn(*self.args)

    def shutdown(self):
        """ template method called when the thread exits """
        pass

    def running(self):
        return not self.stop_event.is_set()

    def wait(self, timeout):
        """ sleeps for the given time, returning early with True when the loop is stopped. """
        return self.stop_event.wait(timeout)

    def stop(self, join=True):
        """
        signals the loop to stop.
        :param join: wait for the background thread to exit. Never waits when called on the background thread.
        """
        event = self.stop_event
        event.set()
        thread = self.background_thread
        self.background_thread = None
        if join and thread and thread is not threading.current_thread():
            thread.join()
