from __future__ import annotations

import logging
import sys

from .config import ConfigManager
from .logging_setup import setup_logging
from .services.firestore import FirestoreTaskStore
from .services.google_auth import GoogleAuthProvider
from .tui.app import TaskDeckApp

logger = logging.getLogger(__name__)


def main() -> None:
    manager = ConfigManager()
    config = manager.load()
    log_file = setup_logging(log_dir=config.logging.directory, level=config.logging.numeric_level)
    for problem in manager.errors():
        logger.warning("Config: %s", problem)
    if not config.firestore.project_id:
        sys.exit(f"Set firestore.project_id in {manager.config_path} first.")

    auth = GoogleAuthProvider(config.auth.client_secrets, config.auth.token_path)
    # The browser sign-in must happen before Textual takes over the terminal.
    identity = auth.current_user() or auth.sign_in()
    store = FirestoreTaskStore(
        config.firestore.project_id,
        lambda: auth.credentials,
        database=config.firestore.database,
        collection=config.firestore.collection,
        poll_interval=config.firestore.poll_interval,
    )
    app = TaskDeckApp(
        store,
        auth,
        identity=identity,
        timezone=config.display.timezone,
        default_filter=config.display.default_filter,
    )
    logger.info("Starting taskdeck for %s (log: %s)", identity.email or identity.uid, log_file)
    try:
        app.run()
    finally:
        app.dashboard.close()


if __name__ == "__main__":  # pragma: no cover
    main()
