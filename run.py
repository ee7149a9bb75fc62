# =============================================================================
# File: run.py
# Purpose: Entry point for development. Starts the Flask bridge and, unless
#          FARMCORE_AUTO_TICKS is off, the periodic game tasks.
# =============================================================================
import atexit
import logging
import os

from farmcore import create_app
from farmcore.scheduler import should_start_scheduler

logging.basicConfig(
    level=os.getenv("FARMCORE_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()

if __name__ == "__main__":
    services = app.extensions["farmcore"]
    if should_start_scheduler():
        services.start()
    atexit.register(services.shutdown)
    app.run(debug=True, use_reloader=False)
