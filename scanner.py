"""Scan session orchestration: camera → sampler → decode → lookup.

One `Scanner` owns at most one live session. Automatic ticks and manual
capture share the same decode pipeline but differ in failure policy:
ticks abort the session after too many consecutive decoder errors,
manual capture only reports and leaves the camera running.
"""

import asyncio
import logging
from dataclasses import dataclass

from capture import CameraError, Facing
from decoder import DecodedResult
from lookup import LookupFailed
from utils import save_snapshot

logger = logging.getLogger("scanner")

MSG_CAMERA_STARTED = "Camera started. Position the barcode in the frame and wait, or press capture."
MSG_CAMERA_FAILED = "Failed to start camera. Please ensure you have a camera and try again."
MSG_REPEATED_ERRORS = "Scanner encountered repeated errors. Please restart scanning."
MSG_NOT_READY = "Video not ready. Wait a moment and try again."
MSG_NOT_DETECTED = (
    "Barcode not detected. For screen barcodes: ensure good lighting, no glare, "
    "and try different angles. Consider using manual entry."
)
MSG_CAPTURE_FAILED = "Capture failed. Try again or adjust barcode position."
MSG_NO_CAMERA = "Start the camera before capturing."
MSG_EMPTY_CODE = "Please enter a barcode or scan one with the camera"
MSG_LOOKUP_ERROR = "Error scanning barcode. Please try again."
MSG_ATTEMPTS_RESET = "Scan attempts reset. Try positioning the barcode again."
MSG_USE_FAILED = "Error recording item usage. Please try again."
MSG_PO_FAILED = "Error adding to Pending PO. Please try again."


@dataclass
class Session:
    running: bool = False
    attempts: int = 0
    consecutive_failures: int = 0
    last_error: str | None = None

    def reset(self):
        self.running = False
        self.attempts = 0
        self.consecutive_failures = 0
        self.last_error = None


class Scanner:
    def __init__(
        self,
        acquisition,
        pipeline,
        sampler,
        client,
        history,
        max_consecutive_failures: int = 10,
        jlog=None,
        snapshot_dir: str = "",
    ):
        self._acquisition = acquisition
        self._pipeline = pipeline
        self._sampler = sampler
        self._client = client
        self.history = history
        self._max_failures = max_consecutive_failures
        self._jlog = jlog
        self._snapshot_dir = snapshot_dir

        self.session = Session()
        self._stream = None
        self._handle = None
        # Bumped by start() and stop(); an overtaken start() backs out
        self._generation = 0

        self.barcode = ""
        self.item: dict | None = None
        self.error: str | None = None
        self.success: str | None = None
        self.loading = False

    def _log(self, event: str, **data):
        if self._jlog is not None:
            self._jlog.log(event, **data)

    @property
    def running(self) -> bool:
        return self.session.running

    @property
    def stream(self):
        return self._stream

    # -- session lifecycle -------------------------------------------------

    async def start(self, facing: Facing = Facing.ENVIRONMENT) -> bool:
        if self.session.running or self._stream is not None:
            self.stop()

        self.error = None
        # A later start() or stop() supersedes this one
        self._generation += 1
        generation = self._generation
        try:
            stream = await asyncio.to_thread(self._acquisition.acquire, facing)
        except CameraError as e:
            logger.error("Camera access failed: %s", e)
            self.error = e.user_message
            return False
        except Exception:
            logger.exception("Error starting camera")
            self.error = MSG_CAMERA_FAILED
            return False

        if generation != self._generation:
            logger.info("Scanning stopped while the camera was opening")
            self._acquisition.release(stream)
            return False

        self._stream = stream
        self.session.running = True
        self._handle = self._sampler.start(stream, self.tick)
        self.success = MSG_CAMERA_STARTED
        logger.info("Scanning started")
        self._log("scan_start", camera=getattr(stream, "index", None))
        return True

    def stop(self):
        if self._handle is not None:
            self._sampler.stop(self._handle)
            self._handle = None
        if self._stream is not None:
            self._acquisition.release(self._stream)
            self._stream = None
        self._pipeline.reset()
        self._generation += 1

        if self.session.running:
            logger.info("Scanning stopped after %d attempts", self.session.attempts)
            self._log("scan_stop", attempts=self.session.attempts)
        self.session.reset()

    # -- decode paths --------------------------------------------------------

    async def tick(self, stream):
        """One automatic sampling attempt."""
        if not self.session.running:
            return
        self.session.attempts += 1

        try:
            result = self._pipeline.attempt(stream.read())
        except Exception as e:
            logger.exception("Scanning error")
            self.error = MSG_CAPTURE_FAILED
            result = DecodedResult(found=False, error=e)

        if result.skipped:
            return
        if result.found:
            logger.info("Barcode detected: %s after %d attempts", result.text, self.session.attempts)
            await self.on_decoded(result.text)
            return

        if result.error is None:
            self.session.consecutive_failures = 0
            return

        self.session.consecutive_failures += 1
        self.session.last_error = str(result.error)
        logger.error("Scanning error (%d in a row): %s",
                     self.session.consecutive_failures, result.error)
        if self.session.consecutive_failures > self._max_failures:
            logger.error("Too many consecutive scanning errors, stopping...")
            failures = self.session.consecutive_failures
            self.stop()
            self.error = MSG_REPEATED_ERRORS
            self._log("scan_abort", failures=failures, error=str(result.error))

    async def capture(self) -> bool:
        """Manual single-shot capture. Never ends the session on failure."""
        if self._stream is None:
            self.error = MSG_NO_CAMERA
            return False

        self.session.attempts += 1
        logger.info("Manual capture attempt #%d", self.session.attempts)
        self.error = None
        try:
            frame = self._stream.read()
            result = self._pipeline.attempt(frame)
        except Exception:
            logger.exception("Manual capture error")
            self.error = MSG_CAPTURE_FAILED
            return False

        if result.skipped:
            self.error = MSG_NOT_READY
            return False
        if result.found:
            await self.on_decoded(result.text)
            return True

        logger.info("All detection methods failed - no barcode detected")
        if self._snapshot_dir:
            path = save_snapshot(frame, self._snapshot_dir)
            logger.info("Saved missed frame to %s", path)
        self.error = MSG_NOT_DETECTED
        return False

    async def on_decoded(self, text: str):
        if not self.session.running:
            logger.debug("Dropping late decode result %s", text)
            return
        self.stop()
        self.barcode = text
        self._log("barcode_decoded", content=text)
        await self.lookup(text)

    # -- lookup and quick actions -------------------------------------------

    async def submit(self, text: str) -> bool:
        """Manual entry: look the code up without touching the camera."""
        self.barcode = text
        return await self.lookup(text)

    async def lookup(self, code: str | None = None) -> bool:
        code = (self.barcode if code is None else code).strip()
        if not code:
            self.error = MSG_EMPTY_CODE
            return False

        self.loading = True
        self.error = None
        self.success = None
        try:
            item = await asyncio.to_thread(self._client.scan, code)
        except LookupFailed as e:
            self.error = str(e)
            self.item = None
            self._log("lookup_failed", code=code, error=str(e))
            return False
        except Exception:
            logger.exception("Unexpected lookup error for %s", code)
            self.error = MSG_LOOKUP_ERROR
            self.item = None
            return False
        finally:
            self.loading = False

        self.item = item
        self.history.add(code)
        logger.info("Looked up %s", code)
        self._log("lookup_ok", code=code)
        return True

    def _item_code(self) -> str:
        return str(self.item.get("barcode") or self.barcode)

    async def use_item(self, quantity: int) -> bool:
        if not self.item or quantity <= 0:
            return False
        code = self._item_code()
        self.error = None
        self.success = None
        try:
            resp = await asyncio.to_thread(self._client.use, code, quantity)
            message = resp.get("message")
        except LookupFailed as e:
            self.error = str(e)
            return False
        except Exception:
            logger.exception("Unexpected error recording usage of %s", code)
            self.error = MSG_USE_FAILED
            return False

        self.success = message
        self.item = {
            **self.item,
            "currentInventory": resp.get("remainingInventory"),
            "needsRestock": resp.get("needsRestock"),
        }
        self._log("item_used", code=code, quantity=quantity)
        return True

    async def add_to_pending_po(self, quantity: int) -> bool:
        if not self.item or quantity <= 0:
            return False
        code = self._item_code()
        self.error = None
        self.success = None
        try:
            resp = await asyncio.to_thread(self._client.add_pending_po, code, quantity)
            message = resp.get("message")
        except LookupFailed as e:
            self.error = str(e)
            return False
        except Exception:
            logger.exception("Unexpected error adding %s to pending PO", code)
            self.error = MSG_PO_FAILED
            return False

        self._log("pending_po_added", code=code, quantity=quantity)
        if await self.lookup(code):
            self.success = message
        return True

    # -- resets ----------------------------------------------------------------

    def reset_attempts(self):
        self.session.attempts = 0
        self.error = None
        self.success = MSG_ATTEMPTS_RESET

    def clear_history(self):
        self.history.clear()

    def forget_permission(self):
        self._acquisition.forget_permission()

    def reset(self):
        self.barcode = ""
        self.item = None
        self.error = None
        self.success = None
        self.stop()
        self.clear_history()

    def status_line(self) -> str:
        if self.error:
            return self.error
        if self.session.running:
            return f"Scanning... attempts: {self.session.attempts}"
        return self.success or ""
