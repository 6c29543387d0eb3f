from __future__ import annotations

import asyncio
import json

from conftest import OWNER
from helpdesk.config import TicketPriority
from helpdesk.infrastructure.database import close_database, create_session_maker, create_tables, init_database
from helpdesk.sla.domain import SLAPolicy
from helpdesk.sla.infrastructure import SQLAlchemySLAPolicyRepository
from helpdesk.sla.interfaces import cli


def _seed(database_url: str) -> None:
    async def runner() -> None:
        engine = init_database(database_url)
        try:
            await create_tables(engine)
            repo = SQLAlchemySLAPolicyRepository(create_session_maker(engine))
            await repo.create_policy(SLAPolicy(
                id=None,
                owner_id=OWNER,
                name="High policy",
                priority=TicketPriority.HIGH,
                first_response_minutes=30,
                resolution_minutes=240,
            ))
        finally:
            await close_database(engine)

    asyncio.run(runner())


def test_parse_args_collects_repeated_owners() -> None:
    args = cli.parse_args(["--owner", "a", "--owner", "b"])
    assert args.owners == ["a", "b"]
    assert cli.parse_args([]).owners == []


def test_cli_scans_all_owners_and_prints_json(tmp_path, capsys) -> None:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'helpdesk.db'}"
    _seed(database_url)

    exit_code = cli.main(["--database-url", database_url])

    output = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert output == {OWNER: {"breaches": [], "checked_count": 0, "errors": []}}


def test_cli_reports_failed_owner(tmp_path, capsys) -> None:
    # Tables never created: every query fails
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"

    exit_code = cli.main(["--database-url", database_url, "--owner", OWNER])

    output = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert output == {OWNER: {"error": "scan failed"}}
