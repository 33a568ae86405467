"""
Interactive setup wizard for logbook sync.

Prompts for the sync server address and, if the server requires a login,
the credentials, then saves them to ~/.logbook/sync_settings.json with
owner-only permissions (0700 dir / 0600 file).

Usage:
    python -m logbook setup
    python -m logbook.scripts.setup   (direct invocation)

Re-run any time the server or password changes.
"""
import getpass
import sys

from logbook.sync.settings_store import SyncSettings, SyncSettingsStore


def run_setup() -> None:
    store = SyncSettingsStore()

    print("\n✈️  Logbook Sync Setup\n")
    print(f"Settings will be stored in: {store.path}\n")

    if store.exists():
        print("⚠️  Existing sync settings were found.")
        overwrite = input("Overwrite them? [y/N] ").strip().lower()
        if overwrite != "y":
            print("Setup cancelled. Existing settings unchanged.")
            sys.exit(0)

    url = input("Sync server URL (e.g. https://logbook.example.com): ").strip()
    if not url:
        print("Error: server URL cannot be empty.")
        sys.exit(1)

    auth = input("Does the server require a login? [Y/n] ").strip().lower() != "n"
    user = ""
    password = ""
    if auth:
        user = input("Login: ").strip()
        if not user:
            print("Error: login cannot be empty.")
            sys.exit(1)
        password = getpass.getpass("Password: ")
        if not password:
            print("Error: password cannot be empty.")
            sys.exit(1)

    store.save(SyncSettings(url=url.rstrip("/"), user=user, password=password, auth=auth))

    print(f"\n✅ Settings saved to {store.path}")
    print("\nRun a sync any time with:  python -m logbook sync\n")


if __name__ == "__main__":
    run_setup()
