#!/usr/bin/env python3
"""
RELAYER SERVICE ENTRY POINT
===========================

Purpose:
- Serve the relayer HTTP API (FastAPI on uvicorn)
- Run the create-time fill dispatcher
- Run the in-process cron cycle (when CRON_INTERVAL_MINUTES > 0)

Modes:
    python main.py --env config_env/relayer.env     # serve
    python main.py --once                           # one scheduler cycle, then exit

PRODUCTION HARDENING:
- Graceful shutdown on SIGINT / SIGTERM
- uvicorn.Server in its own thread (no signal hijack)
- Fail-fast on config errors
"""

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional

import uvicorn

from flashfill_relayer.api.http.relayer_app import create_relayer_app
from flashfill_relayer.core.config import Config
from flashfill_relayer.logging.logger_config import get_component_logger, setup_application_logging
from flashfill_relayer.services.cron_runner import CronRunner
from flashfill_relayer.services.relayer_service import RelayerService
from flashfill_relayer.utils.utils import log_exception

# ---------------------------------------------------------------------
# GLOBALS (FOR SIGNAL HANDLING & THREAD COORDINATION)
# ---------------------------------------------------------------------
service_instance: Optional[RelayerService] = None
cron_runner: Optional[CronRunner] = None
api_server: Optional[uvicorn.Server] = None
api_thread: Optional[threading.Thread] = None
logger: Optional[logging.Logger] = None
shutdown_event = threading.Event()


# ---------------------------------------------------------------------
# GRACEFUL SHUTDOWN HANDLER
# ---------------------------------------------------------------------
def signal_handler(signum, frame):
    if logger:
        logger.warning(f"🛑 Received shutdown signal: {signum}")
    shutdown_event.set()


def shutdown(timeout: float = 30.0) -> None:
    started = time.time()

    # 1️⃣ Stop accepting HTTP work
    if api_server:
        api_server.should_exit = True
    if api_thread and api_thread.is_alive():
        api_thread.join(timeout=max(5, timeout - (time.time() - started)))

    # 2️⃣ Stop periodic cycles
    if cron_runner:
        cron_runner.stop()

    # 3️⃣ Drain-stop the dispatcher (in-flight fill finishes)
    if service_instance:
        try:
            service_instance.stop()
        except Exception as e:
            if logger:
                logger.error(f"❌ Error stopping relayer service: {e}")

    if logger:
        logger.info(f"✅ Graceful shutdown complete in {time.time() - started:.1f}s")


# ---------------------------------------------------------------------
# API RUNNER
# ---------------------------------------------------------------------
def run_api(app, host: str, port: int) -> None:
    """uvicorn.Server (NOT uvicorn.run) so the main thread keeps signals."""
    global api_server

    config_uv = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_level="info",
        lifespan="on",
        access_log=True,
    )
    api_server = uvicorn.Server(config_uv)

    try:
        api_server.run()
    except Exception as exc:
        log_exception("api_thread", exc, logger)
    finally:
        # API gone means the process is done
        shutdown_event.set()


# ---------------------------------------------------------------------
# MAIN
# ---------------------------------------------------------------------
def main():
    global service_instance, cron_runner, api_thread, logger

    parser = argparse.ArgumentParser(description="FlashFill Relayer")
    parser.add_argument(
        "--env",
        type=str,
        default=None,
        help="Path to relayer .env file (e.g. config_env/relayer.env)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single scheduler cycle, print the summary and exit",
    )
    args = parser.parse_args()

    env_path = None
    if args.env:
        env_path = Path(args.env)
        if not env_path.is_absolute():
            env_path = Path(__file__).resolve().parent / env_path

    try:
        # -------------------------------------------------
        # CONFIG + LOGGING
        # -------------------------------------------------
        config = Config(env_path=env_path)

        setup_application_logging(
            log_dir=config.log_dir,
            level=config.log_level,
            max_bytes=50 * 1024 * 1024,
            backup_count=10,
            quiet_uvicorn=True,
        )
        logger = get_component_logger('relayer_service')

        logger.info("=" * 70)
        logger.info("🚀 STARTING FLASHFILL RELAYER")
        logger.info("=" * 70)
        logger.info(f"PID: {os.getpid()}")
        logger.info(f"Python: {sys.version}")
        logger.info(f"ENV: {config.app_env}")

        service_instance = RelayerService(config)

        # -------------------------------------------------
        # ONE-SHOT MODE
        # -------------------------------------------------
        if args.once:
            summary = service_instance.run_cycle()
            print(json.dumps(summary.to_dict(), indent=2))
            return

        # -------------------------------------------------
        # SIGNAL HANDLERS (MUST BE IN MAIN THREAD)
        # -------------------------------------------------
        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        # -------------------------------------------------
        # BACKGROUND WORKERS
        # -------------------------------------------------
        service_instance.start()

        cron_runner = CronRunner(service_instance, config.cron_interval_minutes)
        cron_runner.start()

        # -------------------------------------------------
        # HTTP API
        # -------------------------------------------------
        app = create_relayer_app(service_instance)
        api_thread = threading.Thread(
            target=run_api,
            args=(app, config.host, config.port),
            daemon=False,
            name="RelayerApiThread",
        )
        api_thread.start()

        logger.info("=" * 70)
        logger.info(f"✅ RELAYER READY on {config.host}:{config.port}")
        logger.info("=" * 70)

        while not shutdown_event.is_set():
            shutdown_event.wait(1.0)

    except KeyboardInterrupt:
        if logger:
            logger.info("Received keyboard interrupt")

    except Exception as exc:
        if logger:
            log_exception("relayer.main", exc, logger)
            logger.critical(f"FATAL ERROR: {exc}", exc_info=True)
        else:
            print(f"CRITICAL ERROR: {exc}")
        sys.exit(1)

    finally:
        shutdown()
        if logger:
            logger.info("🏁 Relayer stopped")


# ---------------------------------------------------------------------
# ENTRY POINT
# ---------------------------------------------------------------------
if __name__ == "__main__":
    main()
