"""Readme package listing computed from the ledger."""

from __future__ import annotations

from src.builder.manifest import version_key
from src.github.client import user_profile_url
from src.ledger.ledger import Ledger, Package


async def render_package_list(ledger: Ledger, web_url: str) -> str:
    """One markdown line per (group, name), showing the newest version."""
    latest: dict[tuple[str, str], Package] = {}
    for package in await ledger.query_package():
        key = (package.group, package.name)
        current = latest.get(key)
        if current is None or version_key(package.version) > version_key(current.version):
            latest[key] = package

    lines: list[str] = []
    for key in sorted(latest):
        package = latest[key]
        user = await ledger.query_user(package.user_id)
        user_name = user.name if user is not None else str(package.user_id)
        lines.append(
            f"- `{package.group}/{package.name} {package.version}` "
            f"*{package.description or 'no description'}* "
            f"@[{user_name}]({user_profile_url(web_url, user_name)})\n"
        )
    return "".join(lines)
