"""
Connects to one amplifier, reads every gain and mute once and prints the decoded values.

    amplink-probe 192.168.1.20
    amplink-probe --fake
"""
import argparse
import concurrent.futures
import logging
import sys
import threading

from amplink import settings
from amplink.address import DeviceAddress, InvalidAddressError
from amplink.fake_amplifier import FakeAmplifier
from amplink.poll_cycle import poll_queries
from amplink.protocol.frames import ReadGainCommand, MASTER_CHANNEL
from amplink.session import DeviceSession, SessionEventVisitor

logger = logging.getLogger(__name__)


class _ConnectedWaiter(SessionEventVisitor):
    def __init__(self):
        self.connected = threading.Event()

    def session_connected(self, event):
        self.connected.set()


def describe(command, response):
    """ a line describing the response to a read command. """
    channel = "master" if command.channel == MASTER_CHANNEL else "%s %d" % (command.kind, command.channel)
    if response is None:
        return "%-10s %-5s no response" % (channel, "gain" if isinstance(command, ReadGainCommand) else "mute")
    if isinstance(command, ReadGainCommand):
        return "%-10s gain  %6.1f dB" % (channel, response.db)
    return "%-10s mute  %s" % (channel, "on" if response.muted else "off")


def probe(session: DeviceSession, connect_timeout, out=None):
    """
    reads every channel once over the session.
    :return: the number of reads that went unanswered, or None when the session did not connect
    """
    out = out or sys.stdout
    waiter = _ConnectedWaiter()
    session.events.add(waiter)
    session.open()
    try:
        if not waiter.connected.wait(connect_timeout):
            return None
        print("connected to %s" % session.address, file=out)
        failures = 0
        for command in poll_queries():
            try:
                response = session.send(command).result(session.response_timeout * 2)
            except (IOError, concurrent.futures.TimeoutError) as e:
                logger.debug("%s failed: %s" % (command, e))
                response = None
                failures += 1
            print(describe(command, response), file=out)
        return failures
    finally:
        session.close()


def build_parser():
    parser = argparse.ArgumentParser(prog='amplink-probe', description="Reads every channel of an amplifier once")
    parser.add_argument('address', nargs='?', help="amplifier address, host or host:port")
    parser.add_argument('--fake', action='store_true', help="probe an in-process fake amplifier")
    parser.add_argument('--config', help="settings file applied over the defaults")
    parser.add_argument('--timeout', type=float, help="seconds to wait for the connection")
    parser.add_argument('-v', '--verbose', action='store_true', help="log protocol details")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    settings.configure(args.config)
    if not args.fake and not args.address:
        parser.error("an address is required unless --fake is given")

    fake = FakeAmplifier().start() if args.fake else None
    try:
        address = DeviceAddress(*fake.address) if fake else DeviceAddress.parse(args.address)
    except InvalidAddressError as e:
        parser.error(str(e))
    try:
        timeout = args.timeout if args.timeout is not None else settings.connect_timeout
        failures = probe(DeviceSession(address), timeout)
    finally:
        if fake:
            fake.stop()
    if failures is None:
        print("unable to connect to %s" % address, file=sys.stderr)
        return 2
    return 1 if failures else 0


if __name__ == '__main__':  # pragma no cover
    sys.exit(main())
