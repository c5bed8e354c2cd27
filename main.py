import asyncio
import json
import sys

from analysis.pipeline import create_analyzer
from config import load_config, validate_config
from menus.analysis_menu import analysis_menu
from menus.auth_menu import spotify_authenticate, spotify_logout, spotify_setup_help, spotify_token_status
from menus.config_menu import config_menu
from menus.main_menu import main_menu
from spotify_api.token_manager import MemoryStore
from utils.logger import log_error, log_info, log_warning, setup_logging


def main() -> int:
    setup_logging()

    try:
        config = load_config()
    except FileNotFoundError as e:
        log_error(f"Config file not found: {e}")
        log_error("Please create config.json with at least spotify_client_id.")
        return 1
    except json.JSONDecodeError as e:
        log_error(f"Config file contains invalid JSON: {e}")
        return 1

    setup_logging(config.get("log_level"))
    is_valid, errors = validate_config(config)
    if not is_valid:
        for error in errors:
            log_warning(error)

    # Pending PKCE state only lives as long as this process.
    session_store = MemoryStore()

    while True:
        logged_in = asyncio.run(create_analyzer(config, session_store=session_store).auth.is_authenticated())
        choice = main_menu(logged_in, spotify_token_status(config))

        if choice == "Log in with Spotify":
            spotify_authenticate(config, session_store)

        elif choice == "Spotify setup help":
            spotify_setup_help(config)

        elif choice == "Analyze a playlist":
            analysis_menu(config, session_store)

        elif choice == "Log out":
            spotify_logout(config, session_store)

        elif choice == "Config Menu":
            config = config_menu(config)

        elif choice == "Exit":
            log_info("Exiting program...")
            return 0

        else:
            log_error("Invalid choice.")


if __name__ == "__main__":
    sys.exit(main())
