"""
Tunable values used when components are constructed without explicit arguments.

The module attributes hold the built-in defaults. configure() replaces them with the values
from the settings configuration files next to this module and in ~/.amplink.cfg.
"""
import logging
import sys

from amplink.config.config import configure_module

logger = logging.getLogger(__name__)

port = 8234
device_id = 0xFF
poll_interval = 0.25
response_timeout = 0.3
connect_timeout = 5.0
reconnect_base_delay = 0.5
reconnect_max_delay = 30.0
max_buffer_size = 1024
status_period = 10.0


def configure(user_file=None):
    """ loads the settings configuration files and applies them to this module. """
    conf = configure_module(sys.modules[__name__], user_file=user_file)
    logger.debug("settings configured: port=%s poll_interval=%s response_timeout=%s" %
                 (port, poll_interval, response_timeout))
    return conf
