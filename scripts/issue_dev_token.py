"""Print a bearer token for calling the API locally."""
from __future__ import annotations

import argparse

from tradepnl.core.config import get_settings
from tradepnl.core.security import ROLE_VALUES, create_access_token


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--subject", default="finance@demo.local")
    parser.add_argument("--tenant", default=settings.default_tenant_id)
    parser.add_argument("--role", default="ADMIN", choices=sorted(ROLE_VALUES))
    args = parser.parse_args()

    print(create_access_token(subject=args.subject, tenant_id=args.tenant, role=args.role, settings=settings))


if __name__ == "__main__":
    main()
