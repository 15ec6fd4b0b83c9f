from __future__ import annotations

import argparse
from pathlib import Path

from alembic import command
from alembic.config import Config

from app.db import engine
from app.models import Base


def main() -> None:
    parser = argparse.ArgumentParser(description="Create or migrate the medications database")
    parser.add_argument("--create-all", action="store_true", help="create tables directly, skipping alembic")
    args = parser.parse_args()

    if args.create_all:
        Base.metadata.create_all(engine)
        print("DB tables created (metadata.create_all).")
        return

    project_root = Path(__file__).resolve().parents[1]
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        raise RuntimeError(f"alembic.ini not found at: {alembic_ini}")

    cfg = Config(str(alembic_ini))
    cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(cfg, "head")
    print("DB migrated (alembic upgrade head).")


if __name__ == "__main__":
    main()
