"""
Reassembles frames from the chunks of bytes read from a stream.
"""
import logging

from amplink.protocol.frames import FrameInvalidError, FrameMismatchError, FrameOverflowError, FrameTooShortError, \
    decode_response

logger = logging.getLogger(__name__)


class FrameAccumulator:
    """
    Buffers bytes as they are read and decodes the frames found at the head of the buffer.
    A decoded frame consumes exactly its own bytes; any remainder stays buffered until more
    bytes arrive.

    Bytes that cannot start a frame are discarded up to the next start sentinel. When more than
    max_size bytes are buffered without a frame being decoded, the whole buffer is discarded.

    :param max_size: the most bytes to buffer without decoding a frame
    :param decode: decodes the frame at the head of a buffer, with the same errors as decode_response()
    """

    def __init__(self, max_size=1024, decode=decode_response, log=logger):
        self.buffer = bytearray()
        self.max_size = max_size
        self._decode = decode
        self.logger = log
        self.invalid_count = 0          # resyncs after bytes that were not a frame
        self.mismatch_count = 0         # well formed frames of an unexpected kind
        self.overflow_count = 0         # times the buffer was discarded

    def clear(self):
        del self.buffer[:]

    def feed(self, data, *args):
        """
        Appends data to the buffer and decodes all complete frames.
        :param data: the bytes read
        :param args: extra arguments passed to the decode function, such as the expected function code.
        :return: a list of the decoded frames, possibly empty
        :raises FrameOverflowError: the buffer grew beyond max_size without a frame. The buffer is cleared.
        """
        self.buffer.extend(data)
        frames = []
        while True:
            frame = self._next(*args)
            if frame is None:
                break
            frames.append(frame)
        if not frames and len(self.buffer) > self.max_size:
            size = len(self.buffer)
            self.clear()
            self.overflow_count += 1
            raise FrameOverflowError("discarded %d bytes without a frame" % size)
        return frames

    def _next(self, *args):
        buffer = self.buffer
        while buffer:
            try:
                frame = self._decode(buffer, *args)
                del buffer[:frame.frame_length]
                return frame
            except FrameTooShortError:
                return None
            except FrameInvalidError as e:
                self.invalid_count += 1
                self.logger.debug("%s, skipping %d bytes" % (e, e.skip))
                del buffer[:e.skip]
            except FrameMismatchError as e:
                self.mismatch_count += 1
                self.logger.debug("dropped frame: %s" % e)
                del buffer[:e.length]
        return None
