import uuid
from datetime import datetime, timezone

from shared.database.models import AuditLog
from services.audit.services.audit_service import AuditService, CSV_HEADER


async def test_log_persists_entry_with_json_safe_meta(session_maker, db):
    audit = AuditService(session_maker)
    resource_id = uuid.uuid4()
    when = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    ok = await audit.log("TICKET_ISSUED", user_id=uuid.UUID(int=1), resource_id=resource_id,
                         meta={"eventId": uuid.UUID(int=2), "at": when})

    assert ok is True
    page = await AuditService.list_logs(db)
    assert page["meta"]["total"] == 1
    entry = page["data"][0]
    assert entry.resource_id == str(resource_id)
    assert entry.user_id == str(uuid.UUID(int=1))
    assert entry.meta == {"eventId": str(uuid.UUID(int=2)), "at": when.isoformat()}


async def test_log_failure_is_swallowed():
    def broken_session_maker():
        raise RuntimeError("pool exhausted")

    assert await AuditService(broken_session_maker).log("TICKET_ISSUED") is False


async def test_list_logs_filters_by_action(session_maker, db):
    audit = AuditService(session_maker)
    await audit.log("PAYMENT_EXPIRED", resource_id="p1")
    await audit.log("TICKET_CHECKED_IN", resource_id="t1")
    await audit.log("PAYMENT_EXPIRED", resource_id="p2")

    page = await AuditService.list_logs(db, action="PAYMENT_EXPIRED")

    assert page["meta"]["total"] == 2
    assert {log.resource_id for log in page["data"]} == {"p1", "p2"}


async def test_get_log(session_maker, db):
    await AuditService(session_maker).log("TICKET_TRANSFERRED", resource_id="t9")
    stored = (await AuditService.list_logs(db))["data"][0]

    assert (await AuditService.get_log(db, str(stored.id))).resource_id == "t9"
    assert await AuditService.get_log(db, uuid.uuid4()) is None
    assert await AuditService.get_log(db, "not-a-uuid") is None


def test_csv_quotes_every_field_and_escapes_quotes():
    log = AuditLog(
        id=uuid.UUID(int=7),
        action="TICKET_ISSUED",
        user_id=None,
        resource_id='ticket "vip"',
        meta={"note": 'say "hi"'},
        created_at=datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc),
    )

    lines = AuditService.to_csv([log]).split("\n")

    assert lines[0] == ",".join(f'"{h}"' for h in CSV_HEADER)
    assert lines[1] == (
        f'"{uuid.UUID(int=7)}","TICKET_ISSUED","","ticket ""vip""",'
        '"{""note"": ""say \\""hi\\""""}","2026-05-01T12:00:00+00:00"'
    )
    assert len(lines) == 2


def test_csv_of_no_logs_is_header_only():
    assert AuditService.to_csv([]) == '"id","action","userId","resourceId","metadata","createdAt"'
