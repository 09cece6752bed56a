"""Register an SSH public key for a player and print its fingerprint.

Usage: uv run python bin/register-key.py <player_id> <label> <public_key_file>

The player signs in afterwards by requesting a challenge for the printed fingerprint.
"""

import asyncio
import sys
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from mudauth.auth.errors import AuthError
from mudauth.auth.keys import KeyRegistry
from mudauth.auth.settings import AuthSettings
from mudauth.db import Database, SqliteSshKeyRepository
from mudauth.logging import setup_logging


async def main() -> None:
    if len(sys.argv) != 4:
        print(f"Usage: {sys.argv[0]} <player_id> <label> <public_key_file>")
        sys.exit(1)

    player_id, label, key_file = sys.argv[1:]
    auth_settings = AuthSettings()
    setup_logging(log_dir=auth_settings.log_dir)

    try:
        raw_key = Path(key_file).read_text(encoding="utf-8")
    except OSError as e:
        print(f"Error: cannot read {key_file}: {e}")
        sys.exit(1)

    db = Database(auth_settings.database_path)
    db.connect()

    try:
        registry = KeyRegistry(SqliteSshKeyRepository(db))

        try:
            key = await registry.register_public_key(player_id, raw_key, label)
        except AuthError as e:
            print(f"Error: {e.message} ({e.kind.value})")
            sys.exit(1)

        print(f"Key registered: {key.name} (id: {key.key_id}, type: {key.key_type})")
        print(f"Fingerprint: {key.fingerprint}")
    finally:
        db.close()


if __name__ == "__main__":
    asyncio.run(main())
