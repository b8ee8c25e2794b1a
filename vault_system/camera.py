"""
Camera acquisition for the verifier

A scan is an asyncio task bound to a capture device. The device is
opened in a scoped context and released when the scan ends, whether it
found a code, failed, or was cancelled.
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Optional, Callable

import cv2
import numpy as np

from .config import settings
from .transfer_codec import TransferCodec
from .exceptions import CameraUnavailable, NoCodeFound

logger = logging.getLogger("CameraScanner")


class OpenCVCaptureDevice:
    """Live video source backed by cv2.VideoCapture"""

    def __init__(self, index: Optional[int] = None):
        self.index = settings.CAMERA_INDEX if index is None else index
        self._capture = cv2.VideoCapture(self.index)
        if not self._capture.isOpened():
            self._capture.release()
            raise CameraUnavailable(f"Could not open camera {self.index}")

    def read_frame(self) -> Optional[np.ndarray]:
        ok, frame = self._capture.read()
        return frame if ok else None

    def release(self):
        self._capture.release()


@contextmanager
def open_capture_device(factory: Callable):
    """Open a capture device and guarantee its release"""
    try:
        device = factory()
    except CameraUnavailable:
        raise
    except Exception as e:
        logger.error(f"Failed to open capture device: {e}")
        raise CameraUnavailable(f"Could not open camera: {e}") from e
    try:
        yield device
    finally:
        device.release()
        logger.info("Capture device released")


async def run_off_loop(func: Callable, *args):
    """
    Run a blocking call in a worker thread

    If the caller is cancelled, the call is still allowed to finish
    before the cancellation propagates, so a device is never released
    while a read is in flight.
    """
    future = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        await asyncio.wait([future])
        raise


class CameraScanner:
    """
    Polls a capture device until a QR code is decoded

    A frame without a code is not a failure; polling continues until a
    code is found or the scan is cancelled. Frame reads and decoding run
    in worker threads.
    """

    def __init__(
        self,
        codec: Optional[TransferCodec] = None,
        device_factory: Optional[Callable] = None,
        frame_interval: Optional[float] = None
    ):
        self.codec = codec or TransferCodec()
        self.device_factory = device_factory or OpenCVCaptureDevice
        self.frame_interval = (
            settings.CAMERA_FRAME_INTERVAL if frame_interval is None else frame_interval
        )
        self.frames_scanned = 0
        self._task: Optional[asyncio.Task] = None

    async def _scan_frame(self, device) -> Optional[str]:
        """Read and decode one frame; None when there is nothing to decode"""
        frame = await run_off_loop(device.read_frame)
        if frame is None:
            return None
        self.frames_scanned += 1
        try:
            return await run_off_loop(self.codec.scan, frame)
        except NoCodeFound:
            return None

    async def scan(self) -> str:
        """
        Scan frames until a code is found

        Returns:
            Raw transport string

        Raises:
            CameraUnavailable: if the device cannot be opened or fails
                while reading
        """
        self.frames_scanned = 0
        with open_capture_device(self.device_factory) as device:
            logger.info("Camera scan started")
            while True:
                try:
                    raw = await self._scan_frame(device)
                except Exception as e:
                    logger.error(f"Camera read failed: {e}")
                    raise CameraUnavailable(f"Camera read failed: {e}") from e
                if raw is not None:
                    return raw
                await asyncio.sleep(self.frame_interval)

    def start(self) -> asyncio.Task:
        """Run scan() as a task on the running loop"""
        if self.is_running:
            raise RuntimeError("Camera scan already running")
        self._task = asyncio.get_running_loop().create_task(self.scan())
        return self._task

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def cancel(self):
        """Stop polling; the device is released as the task unwinds"""
        if self._task is None:
            return
        task, self._task = self._task, None
        if task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Camera scan cancelled after %d frame(s)", self.frames_scanned)
