import sounddevice as sd
import logging
import queue
import threading
from dataclasses import dataclass

CHANNEL_MODES = ('stereo', 'left', 'right')


@dataclass(frozen=True)
class SourceChange:
    """
    Queued between blocks when the capture source changes.

    Everything after it in the queue was captured with these settings, so
    the consumer resets (or rebuilds) its meters before using them.
    """
    sample_rate: float
    block_size: int


class AudioEngine:
    """
    Captures stereo input with sounddevice and hands blocks to a consumer.

    The audio callback only copies each block into a queue. The consumer
    thread pulls blocks with `read_block()` and runs the meters, so no
    metering work happens on the audio thread.
    """
    def __init__(self, max_queue_blocks=64):
        self.input_device = None
        self.sample_rate = 48000
        self.block_size = 1024
        self.stream = None
        self.logger = logging.getLogger(__name__)

        # 'stereo', 'left', 'right' ('left'/'right' feed one input to both meters)
        self.input_channel_mode = 'stereo'

        self.blocks = queue.Queue(maxsize=max_queue_blocks)
        self.dropped_blocks = 0
        self.status_flags = 0
        self.lock = threading.Lock()

    def list_devices(self):
        """Returns a list of available audio devices."""
        return sd.query_devices()

    def set_device(self, input_device_id):
        self.input_device = input_device_id
        self.logger.info(f"Set input device: {input_device_id}")
        self._source_changed()

    def set_sample_rate(self, rate):
        self.sample_rate = rate
        self.logger.info(f"Set sample rate: {rate}")
        self._source_changed()

    def set_block_size(self, size):
        self.block_size = size
        self.logger.info(f"Set block size: {size}")
        self._source_changed()

    def set_channel_mode(self, input_mode):
        if input_mode not in CHANNEL_MODES:
            raise ValueError(f"Unknown channel mode: {input_mode}")
        self.input_channel_mode = input_mode
        self.logger.info(f"Set channel mode: {input_mode}")
        self._source_changed()

    def _source_changed(self):
        # Old blocks go, the marker goes in, and only then does new audio arrive.
        if self.is_active():
            self.stop_stream()
            self.request_reset()
            self.start_stream()

    def request_reset(self):
        """Queue a SourceChange so the reset lands between blocks, never inside one."""
        marker = SourceChange(self.sample_rate, self.block_size)
        try:
            self.blocks.put_nowait(marker)
        except queue.Full:
            # Make room: stale audio is worthless once the source changed
            self._drain()
            self.blocks.put_nowait(marker)

    def _input_channels(self):
        if self.input_channel_mode == 'left':
            return 1
        return 2

    def _callback(self, indata, frames, time, status):
        if status:
            self.status_flags += 1

        mode = self.input_channel_mode
        if mode == 'left' or indata.shape[1] < 2:
            left = indata[:, 0].copy()
            right = left.copy()
        elif mode == 'right':
            right = indata[:, 1].copy()
            left = right.copy()
        else:
            left = indata[:, 0].copy()
            right = indata[:, 1].copy()

        try:
            self.blocks.put_nowait((left, right))
        except queue.Full:
            self.dropped_blocks += 1

    def start_stream(self):
        """Starts the input stream. Returns False (and logs) if the device fails."""
        with self.lock:
            if self.stream is not None:
                return True

            channels = self._input_channels()
            try:
                self.stream = sd.InputStream(
                    device=self.input_device,
                    samplerate=self.sample_rate,
                    blocksize=self.block_size,
                    channels=channels,
                    dtype='float32',
                    callback=self._callback,
                )
                self.stream.start()
                self.logger.info(
                    f"Input stream started. Device={self.input_device}, SR={self.sample_rate}, "
                    f"Ch={channels}, Mode={self.input_channel_mode}"
                )
                return True
            except (sd.PortAudioError, ValueError) as e:
                self.logger.error(f"Failed to start input stream: {e}")
                # Don't raise, the caller reports it.
                self.stream = None
                return False

    def stop_stream(self):
        """Stops the input stream and drops queued blocks."""
        with self.lock:
            if self.stream is not None:
                self.stream.stop()
                self.stream.close()
                self.stream = None
                self.logger.info("Input stream stopped")
        self._drain()
        if self.dropped_blocks:
            self.logger.warning(f"{self.dropped_blocks} blocks dropped (consumer too slow)")
        if self.status_flags:
            self.logger.warning(f"{self.status_flags} callbacks reported input overflow or underflow")

    def _drain(self):
        while True:
            try:
                self.blocks.get_nowait()
            except queue.Empty:
                return

    def read_block(self, timeout=1.0):
        """
        Next item from the capture queue: a (left, right) pair of float32
        arrays, a SourceChange, or None if nothing arrived within `timeout`.
        """
        try:
            return self.blocks.get(timeout=timeout)
        except queue.Empty:
            return None

    def is_active(self):
        """Returns True if the stream is active."""
        return self.stream is not None and self.stream.active
