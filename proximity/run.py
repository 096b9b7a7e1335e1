import uvicorn
import os
import signal
import threading

from proximity.config.logging_setup import setup_logging
from proximity.providers.settings import get_settings

setup_logging()


def setup_signal_handlers():
    """Install handlers for a prompt shutdown."""
    def signal_handler(signum, frame):
        print(f"\n🛑 Received signal {signum}. Stopping server...")

        active_threads = threading.active_count()
        if active_threads > 1:
            print(f"📝 {active_threads} active threads being stopped...")

        os._exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def main():
    """Start the API server locally."""
    settings = get_settings()
    host = settings.proximity_host
    port = settings.proximity_port
    reload = os.environ.get("PROXIMITY_RELOAD", "false").lower() == "true"

    print(f"Starting API at http://{host}:{port}")
    print("Press CTRL+C to quit.")

    setup_signal_handlers()

    uvicorn.run(
        "proximity.main:app",
        host=host,
        port=port,
        reload=reload,
        reload_dirs=["proximity/"] if reload else None,
        log_config=None,
    )


if __name__ == "__main__":
    main()
