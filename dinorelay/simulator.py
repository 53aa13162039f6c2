#!/usr/bin/env python3
"""
simulator.py — Game-server save-file simulator for dinorelay testing.

Creates a directory and performs the file operations a game server does on
its per-player database folder:
  • New players joining (save file created)
  • Periodic saves (file rewritten with updated stats)
  • Players wiped or removed (save file deleted)

Run it against the directory the relay is watching to exercise the whole
pipeline end-to-end.

Usage
-----
    python -m dinorelay.simulator --target-dir /tmp/players --players 5

    # Or use the default (creates its own temp dir)
    python -m dinorelay.simulator
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import random
import shutil
import tempfile
import time

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("dinorelay.simulator")

_SPECIES = ["Tenontosaurus", "Carnotaurus", "Pachycephalosaurus", "Deinosuchus", "Omniraptor"]

# SteamID64 values start at this offset for individual accounts
_STEAMID64_BASE = 76561197960265728


def fake_steamid(rng: random.Random) -> str:
    """Return a plausible SteamID64 string."""
    return str(_STEAMID64_BASE + rng.randrange(10**8, 10**9))


def player_save(rng: random.Random) -> dict:
    """Build a save-file body with a handful of player stats."""
    return {
        "CharacterClass": rng.choice(_SPECIES),
        "Growth": round(rng.uniform(0.1, 1.0), 3),
        "Health": rng.randint(50, 1000),
        "Stamina": rng.randint(10, 100),
        "Hunger": rng.randint(0, 100),
        "Thirst": rng.randint(0, 100),
        "Location_Isle_V3": f"X={rng.uniform(-4e5, 4e5):.1f} Y={rng.uniform(-4e5, 4e5):.1f}",
    }


def _write_save(path: str, body: dict) -> None:
    # The server rewrites saves in place, which is what the relay must handle
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(body, fh)


def simulate_server(
    target_dir: str,
    players: int = 5,
    saves_per_player: int = 3,
    delay: float = 0.5,
    delete_fraction: float = 0.4,
    seed: int | None = None,
) -> dict[str, list[str]]:
    """Simulate game-server save activity in *target_dir*.

    1. Create one save file per player.
    2. Rewrite each file *saves_per_player* times with new stats.
    3. Delete a fraction of the files.

    Args:
        target_dir:       Directory to write save files in.
        players:          Number of player files to create.
        saves_per_player: Rewrites per file after creation.
        delay:            Pause between operations, in seconds.
        delete_fraction:  Share of players whose file is deleted at the end.
        seed:             Random seed for reproducible runs.

    Returns:
        A dict with the ``created`` and ``deleted`` file paths.
    """
    rng = random.Random(seed)
    os.makedirs(target_dir, exist_ok=True)
    logger.info("🦖 Starting save simulation in: %s", target_dir)
    logger.info("   Players: %d  |  Saves each: %d", players, saves_per_player)

    # ---- Phase 1: Players join ----
    created: list[str] = []
    for _ in range(players):
        path = os.path.join(target_dir, f"{fake_steamid(rng)}.json")
        _write_save(path, player_save(rng))
        created.append(path)
        time.sleep(delay)
    logger.info("Phase 1: Created %d save files.", len(created))

    # ---- Phase 2: Periodic saves ----
    for round_no in range(saves_per_player):
        for path in created:
            _write_save(path, player_save(rng))
            time.sleep(delay)
        logger.info("Phase 2: Save round %d complete.", round_no + 1)

    # ---- Phase 3: Players removed ----
    delete_count = int(len(created) * delete_fraction)
    deleted = created[:delete_count]
    for path in deleted:
        try:
            os.remove(path)
        except OSError as exc:
            logger.warning("Could not delete %s: %s", path, exc)
        time.sleep(delay)
    logger.info("Phase 3: Deleted %d save files.", len(deleted))

    logger.info("✅ Save simulation complete.")
    return {"created": created, "deleted": deleted}


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(
        prog="dinorelay-simulator",
        description="Simulate game-server player save activity for testing.",
    )
    parser.add_argument(
        "--target-dir",
        default=None,
        help="Directory to operate in (default: auto-created temp dir).",
    )
    parser.add_argument(
        "--players",
        type=int,
        default=5,
        help="Number of player save files (default: 5).",
    )
    parser.add_argument(
        "--saves",
        type=int,
        default=3,
        help="Rewrites per save file (default: 3).",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=0.5,
        help="Seconds between operations (default: 0.5).",
    )
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Remove the target directory after simulation.",
    )

    args = parser.parse_args()

    target = args.target_dir or tempfile.mkdtemp(prefix="dinorelay_sim_")

    try:
        simulate_server(target, args.players, args.saves, args.delay)
    finally:
        if args.cleanup and os.path.isdir(target):
            shutil.rmtree(target, ignore_errors=True)
            logger.info("Cleaned up: %s", target)
        else:
            logger.info("Files remain in: %s", target)


if __name__ == "__main__":
    main()
