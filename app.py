import asyncio
import logging
import logging.handlers
import signal
from relay.config import settings
from relay.ws_server import run_ws_server

def setup_logging():
    loglevel = settings.LOG_LEVEL.upper()
    # основной лог в stdout
    logging.basicConfig(
        level=loglevel,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    # отдельный логгер для диагностики очередей и heartbeat
    diag_logger = logging.getLogger("relay_diag")
    diag_logger.setLevel(logging.INFO)
    if not settings.DIAG_LOG_FILE:
        return
    handler = logging.handlers.RotatingFileHandler(
        settings.DIAG_LOG_FILE, maxBytes=10 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter("%(asctime)s | %(message)s"))
    diag_logger.addHandler(handler)

async def main():
    setup_logging()
    logging.info(f"Старт релея, порт={settings.PORT}")
    loop = asyncio.get_running_loop()
    server = asyncio.ensure_future(run_ws_server(settings))
    terminated = asyncio.Event()

    def on_sigterm():
        # docker stop, systemd: останавливаем сервер так же, как Ctrl+C
        terminated.set()
        server.cancel()

    loop.add_signal_handler(signal.SIGTERM, on_sigterm)
    try:
        await server
    except asyncio.CancelledError:
        if not terminated.is_set():
            raise
        logging.info("Остановлено по SIGTERM")
    finally:
        loop.remove_signal_handler(signal.SIGTERM)

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Остановлено по Ctrl+C")
