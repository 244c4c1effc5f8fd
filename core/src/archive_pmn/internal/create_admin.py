from __future__ import annotations

import argparse
import getpass
import json
from pathlib import Path

from archive_pmn.config import load_core_config, resolve_configured_paths
from archive_pmn.db import resolve_db_path
from archive_pmn.db.migrate import apply_migrations
from archive_pmn.home import HOME_ENV_VAR, ensure_archive_layout, resolve_archive_home
from archive_pmn.services.accounts import create_or_promote_super_admin


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m archive_pmn.internal.create_admin",
        description="Create (or promote) a super administrator account.",
    )
    parser.add_argument("--home", type=Path, default=None, help=f"Override {HOME_ENV_VAR}")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", default="Super Administrateur", help="Full name")
    parser.add_argument(
        "--password",
        default=None,
        help="Password (prompted when omitted)",
    )
    args = parser.parse_args(argv)

    environ = None
    if args.home is not None:
        environ = {HOME_ENV_VAR: str(args.home)}

    home = resolve_archive_home(environ)
    paths = ensure_archive_layout(home)
    config = load_core_config(paths)
    paths = resolve_configured_paths(paths, config)

    db_path = resolve_db_path(paths)
    apply_migrations(db_path)

    password = args.password
    if password is None:
        password = getpass.getpass("Mot de passe : ")
    if len(password) < config.auth.min_password_length:
        parser.error(
            f"password must be at least {config.auth.min_password_length} characters"
        )

    user, created = create_or_promote_super_admin(
        db_path, email=args.email, full_name=args.name, password=password
    )
    print(
        json.dumps(
            {"user_id": user.user_id, "email": user.email, "created": created},
            ensure_ascii=False,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
