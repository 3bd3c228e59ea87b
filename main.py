"""Main entry: camera preview + scan session, or one-shot manual lookups."""

import argparse
import asyncio
import json
import logging
import signal
import sys

import cv2

from capture import CameraAcquisition
from decoder import FramePipeline
from history import ScanHistory
from lookup import InventoryClient
from sampler import FrameSampler
from scanner import Scanner
from utils import (
    load_config,
    setup_logging,
    JsonFileStore,
    JsonLinesLogger,
)

logger = logging.getLogger("scanner")

WINDOW = "Barcode Scanner"
PREVIEW_INTERVAL = 0.03
GUIDE_COLOR = (0, 165, 255)  # orange, BGR


def build_scanner(config: dict) -> Scanner:
    store = JsonFileStore(config["state_file"])
    return Scanner(
        CameraAcquisition.from_config(store, config),
        FramePipeline(),
        FrameSampler(interval=config["sample_interval_s"]),
        InventoryClient(config["api_url"], timeout=config["request_timeout"]),
        ScanHistory(store),
        max_consecutive_failures=config["max_consecutive_failures"],
        jlog=JsonLinesLogger(config["log_file"]),
        snapshot_dir=config.get("snapshot_dir", ""),
    )


def draw_overlay(frame, status: str):
    h, w = frame.shape[:2]
    # Scan guide: a wide box in the middle of the frame
    x1, y1 = int(w * 0.15), int(h * 0.35)
    x2, y2 = int(w * 0.85), int(h * 0.65)
    cv2.rectangle(frame, (x1, y1), (x2, y2), GUIDE_COLOR, 2)
    if status:
        cv2.putText(frame, status[:90], (10, h - 15), cv2.FONT_HERSHEY_SIMPLEX,
                    0.5, (255, 255, 255), 1, cv2.LINE_AA)
    return frame


def report(scanner: Scanner):
    if scanner.item is not None:
        print(json.dumps(scanner.item, indent=2))
    if scanner.success:
        print(scanner.success)
    if scanner.error:
        print(f"ERROR: {scanner.error}")


async def run_actions(scanner: Scanner, args) -> bool:
    """Follow-up quick actions on the item that was just looked up."""
    ok = True
    if args.use:
        ok = await scanner.use_item(args.use) and ok
    if args.add_po:
        ok = await scanner.add_to_pending_po(args.add_po) and ok
    return ok


async def run_camera(scanner: Scanner, args, gui: bool) -> bool:
    loop = asyncio.get_running_loop()
    quit_event = asyncio.Event()
    try:
        loop.add_signal_handler(signal.SIGINT, quit_event.set)
    except NotImplementedError:
        pass  # Windows

    if not await scanner.start():
        report(scanner)
        return False

    try:
        await _preview_loop(scanner, args, gui, quit_event)
    finally:
        scanner.stop()
        if gui:
            cv2.destroyAllWindows()
    return scanner.item is not None


async def _preview_loop(scanner: Scanner, args, gui: bool, quit_event: asyncio.Event):
    logger.info("Scanner started. Keys: c/space capture, s start/stop, r reset attempts, q/ESC quit.")
    if gui:
        cv2.namedWindow(WINDOW, cv2.WINDOW_NORMAL)

    last_barcode = ""
    while not quit_event.is_set():
        await asyncio.sleep(PREVIEW_INTERVAL)

        if scanner.barcode and scanner.barcode != last_barcode and not scanner.loading:
            last_barcode = scanner.barcode
            report(scanner)
            if scanner.item is not None:
                await run_actions(scanner, args)
                report(scanner)
            if not gui:
                break

        if not gui:
            if not scanner.running and scanner.error and not scanner.loading:
                report(scanner)
                break
            continue

        stream = scanner.stream
        frame = stream.read() if stream is not None else None
        if frame is not None:
            cv2.imshow(WINDOW, draw_overlay(frame, scanner.status_line()))

        key = cv2.waitKey(1) & 0xFF
        if key in (27, ord("q")):
            break
        if key in (ord("c"), ord(" ")):
            await scanner.capture()
        elif key == ord("s"):
            if scanner.running:
                scanner.stop()
            else:
                await scanner.start()
        elif key == ord("r"):
            scanner.reset_attempts()


async def run(args, config: dict) -> bool:
    scanner = build_scanner(config)

    if args.forget_permission:
        scanner.forget_permission()
        print("Camera permission flag cleared.")
    if args.clear_history:
        scanner.clear_history()
        print("Search history cleared.")
    if args.forget_permission or args.clear_history:
        if not args.code and not args.camera:
            return True

    if args.history:
        for value in scanner.history.entries:
            print(value)
        return True

    if args.code:
        ok = await scanner.submit(args.code)
        if ok:
            ok = await run_actions(scanner, args)
        report(scanner)
        return ok

    return await run_camera(scanner, args, gui=not args.no_gui)


def main():
    parser = argparse.ArgumentParser(description="Scan inventory barcodes and look them up.")
    parser.add_argument("--config", type=str, default=None, help="path to config.json")
    parser.add_argument("--code", type=str, default=None, help="look up a barcode typed by hand")
    parser.add_argument("--camera", action="store_true", help="scan with the camera (default)")
    parser.add_argument("--use", type=int, default=0, help="record usage of N units after lookup")
    parser.add_argument("--add-po", type=int, default=0, help="add N units to a pending PO")
    parser.add_argument("--history", action="store_true", help="print recent searches")
    parser.add_argument("--clear-history", action="store_true")
    parser.add_argument("--forget-permission", action="store_true")
    parser.add_argument("--no-gui", action="store_true", help="scan without a preview window")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    config = load_config(args.config)

    ok = asyncio.run(run(args, config))
    logger.info("Scanner stopped.")
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
