import questionary

from config import CONFIG_SCHEMA, load_config, reset_to_defaults, update_config, validate_config
from utils.logger import log_error, log_success


def config_menu(config: dict) -> dict:
    """
    Display the configuration menu and handle user selections.
    Returns the potentially updated config dict.
    """
    while True:
        choice = questionary.select(
            "⚙️ Config Menu — What would you like to do?",
            choices=[
                "View current config",
                "Update a setting",
                "Reset to defaults",
                "Validate configuration",
                "Back",
            ],
        ).ask()

        if choice == "View current config":
            view_config(config)

        elif choice == "Update a setting":
            config = update_setting_menu(config)

        elif choice == "Reset to defaults":
            if questionary.confirm("Reset every setting to its default?", default=False).ask():
                success, message = reset_to_defaults()
                if success:
                    log_success(message)
                    config = load_config()
                else:
                    log_error(message)

        elif choice == "Validate configuration":
            is_valid, errors = validate_config(config)
            if is_valid:
                log_success("Configuration is valid! ✓")
            else:
                for error in errors:
                    log_error(error)

        else:
            break

    return config


def view_config(config: dict) -> None:
    """Display the current configuration grouped by category."""
    print("\n" + "=" * 50)
    print("📋 Current Configuration")
    print("=" * 50)

    categories = {
        "Spotify App": ["spotify_client_id", "spotify_redirect_uri", "spotify_scopes", "spotify_token_relay_url"],
        "Storage": ["spotify_token_cache_path"],
        "Requests": ["spotify_request_timeout", "spotify_max_pages", "spotify_feature_batch_size"],
        "Behavior": ["spotify_auth_logout_delay", "log_level"],
    }

    for category, keys in categories.items():
        print(f"\n{category}:")
        for key in keys:
            if key in config:
                value = config[key]
                if isinstance(value, list):
                    value = ", ".join(str(v) for v in value)
                print(f"  {key}: {value if value != '' else '(not set)'}")

    print("\n" + "=" * 50)


def update_setting_menu(config: dict) -> dict:
    """Menu to update individual settings."""
    key = questionary.select(
        "Select setting to update:",
        choices=list(CONFIG_SCHEMA.keys()) + ["Back"],
    ).ask()

    if key in (None, "Back"):
        return config

    schema = CONFIG_SCHEMA.get(key, {})
    current_value = config.get(key, "")
    print(f"\nCurrent value: {current_value}")

    if "choices" in schema:
        new_value = questionary.select(f"Select new value for {key}:", choices=schema["choices"]).ask()

    elif schema.get("type") in [int, (int, float)]:
        min_val = schema.get("min", 0)
        max_val = schema.get("max", 9999)
        new_value_str = questionary.text(
            f"Enter new value for {key} ({min_val}-{max_val}):",
            default=str(current_value),
        ).ask()
        try:
            new_value = int(new_value_str) if schema.get("type") == int else float(new_value_str)
        except (TypeError, ValueError):
            log_error("Invalid number format")
            return config

    elif schema.get("type") == list:
        raw = questionary.text(
            f"Enter {key} separated by spaces:",
            default=" ".join(str(v) for v in (current_value or [])),
        ).ask()
        new_value = [part for part in (raw or "").split() if part]

    else:
        new_value = questionary.text(f"Enter new value for {key}:", default=str(current_value)).ask()

    success, message = update_config(key, new_value)
    if success:
        log_success(message)
        config[key] = new_value
    else:
        log_error(message)

    return config
