import questionary


def main_menu(logged_in: bool, status: str = "") -> str:
    if status:
        print(f"\n{status}")
    choices = ["Analyze a playlist", "Log out"] if logged_in else ["Log in with Spotify", "Spotify setup help"]
    choices += ["Config Menu", "Exit"]
    return questionary.select("🎧 Playlist Analyzer — What would you like to do?", choices=choices).ask() or "Exit"
