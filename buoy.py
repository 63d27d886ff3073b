#!/usr/bin/env python3
"""
Buoy - Buffered delivery of SignalK data to an HTTP data API

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License. See LICENSE file for details.
"""

import asyncio
import json
import logging
import os
import signal
import sys
import threading
from dotenv import load_dotenv
from ingest import BufferSettings, DeltaAdapter, Ingestor, PathOption, resolve_self_context
from ingest.delta import parse_tags
from ingest.point import utcnow
from transports import create_transport

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

# --- CONFIGURATION ---
TRANSPORT_TYPE = os.getenv("TRANSPORT_TYPE", "http")

# Feed configuration
DELTA_SOURCE = os.getenv("DELTA_SOURCE", "-")
PATHS_FILE = os.getenv("PATHS_FILE", "paths.json")
DEFAULT_TAGS = os.getenv("DEFAULT_TAGS", "")
TAG_AS_SELF = os.getenv("TAG_AS_SELF", "true").lower() in ("1", "true", "yes", "on")
SELF_UUID = os.getenv("SELF_UUID")
SELF_MMSI = os.getenv("SELF_MMSI")

# Buffer and transport configuration (loaded into an options dict)
BUFFER_CONFIG = {
    "apiUrl": os.getenv("API_URL"),
    "apiKey": os.getenv("API_KEY"),
    "apiMethod": os.getenv("API_METHOD", "PUT"),
    "batchSize": os.getenv("BATCH_SIZE", "100"),
    "flushSecs": os.getenv("FLUSH_SECS", "60"),
    "maxBuffer": os.getenv("MAX_BUFFER", "1000"),
    "ttlSecs": os.getenv("TTL_SECS"),
    "sendBookkeeping": os.getenv("SEND_BOOKKEEPING", "true"),
}


def load_path_options(filename):
    """
    Load path options from a JSON file.
    Expected format: a list of {enabled, context, path, interval, pathTags}
    Returns a list of PathOption; invalid entries are skipped.
    """
    if not os.path.exists(filename):
        logger.warning("Paths file not found: %s, recording everything", filename)
        return [PathOption(path="*", context="*", interval=0)]

    logger.info("Loading path options from %s", filename)
    with open(filename, "r") as f:
        raw = json.load(f)

    if not isinstance(raw, list):
        raise ValueError(f"{filename} must contain a list of path options")

    options = []
    for entry in raw:
        try:
            options.append(PathOption.from_dict(entry))
        except ValueError as e:
            logger.warning("Invalid path option: %s", e)

    logger.info("Loaded %d path options from %s", len(options), filename)
    return options


def open_source(source):
    if source == "-":
        return sys.stdin
    return open(source, "r")


def read_lines(stream, loop, queue):
    """
    Blocking line reader, run in a daemon thread so a read that never
    returns cannot hold up shutdown. Posts each line, then None at the end
    (or the exception that stopped the read). Closes the stream unless it
    is stdin.
    """
    def post(item):
        try:
            loop.call_soon_threadsafe(queue.put_nowait, item)
            return True
        except RuntimeError:
            # event loop already closed
            return False

    try:
        for line in iter(stream.readline, ""):
            if not post(line):
                return
    except (OSError, ValueError) as e:
        post(e)
        return
    finally:
        if stream is not sys.stdin:
            stream.close()
    post(None)


async def feed_reader(ingestor, adapter):
    """
    Reads newline-delimited deltas and pushes their values into the buffer.
    """
    loop = asyncio.get_event_loop()
    queue = asyncio.Queue()
    stream = open_source(DELTA_SOURCE)
    logger.info("Reading deltas from %s", "stdin" if DELTA_SOURCE == "-" else DELTA_SOURCE)

    reader = threading.Thread(
        target=read_lines,
        args=(stream, loop, queue),
        name="delta-reader",
        daemon=True
    )
    reader.start()

    while True:
        line = await queue.get()
        if line is None:
            logger.info("Delta source exhausted")
            break
        if isinstance(line, Exception):
            raise line
        if not line.strip():
            continue

        try:
            delta = json.loads(line)
            for payload in adapter.payloads(delta, utcnow()):
                ingestor.send(payload)
        except (ValueError, AttributeError, TypeError) as e:
            logger.error("Skipping delta: %s error: %s", line.strip()[:200], e)


async def start_buffer():
    """Main async function that coordinates all tasks."""
    try:
        settings = BufferSettings.from_options(BUFFER_CONFIG)
        transport = create_transport(TRANSPORT_TYPE, settings)
        self_context = resolve_self_context(SELF_UUID, SELF_MMSI)
        adapter = DeltaAdapter(
            load_path_options(PATHS_FILE),
            default_tags=parse_tags(DEFAULT_TAGS),
            self_context=self_context,
            tag_as_self=TAG_AS_SELF
        )
    except (ValueError, OSError) as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    logger.info("Starting Buoy. Transport: %s, Self: %s", TRANSPORT_TYPE, self_context)

    ingestor = Ingestor(settings, transport)
    try:
        await ingestor.start()
    except Exception as e:
        logger.error("Error initializing %s transport: %s", TRANSPORT_TYPE, e)
        await transport.close()
        sys.exit(1)

    reader_task = asyncio.create_task(feed_reader(ingestor, adapter))

    # Stop cleanly on SIGTERM as well as Ctrl-C
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, reader_task.cancel)
    except NotImplementedError:
        pass

    try:
        await reader_task
    except asyncio.CancelledError:
        logger.info("Stopping buffer...")
    except (OSError, ValueError) as e:
        logger.error("Delta source failed: %s", e)
    finally:
        delivered, failed = await ingestor.stop()
        logger.info("Final flush: %d points sent, %d failed, %d dropped",
                    delivered, failed, ingestor.dropped)


def main():
    """Entry point that handles asyncio setup and shutdown."""
    try:
        asyncio.run(start_buffer())
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")


if __name__ == "__main__":
    main()
