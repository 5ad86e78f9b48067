"""Tests for the audit buffer and the SQLite sink."""

import pytest

from a2ahost.audit import AuditBuffer, AuditRecord, Direction, SqliteAuditSink


class TestAuditBuffer:
    def test_serializes_non_string_payloads(self):
        audit = AuditBuffer()
        entry = audit.record(Direction.CLIENT_SIDE, {"b": [1, 2]})
        assert entry.payload == '{"b":[1,2]}'
        assert len(audit) == 1

    def test_records_keep_order(self):
        audit = AuditBuffer()
        for i in range(3):
            audit.record(Direction.AT_SERVER, str(i))
        assert [r.payload for r in audit.records] == ["0", "1", "2"]

    def test_to_row_truncates_strings_only(self):
        row = AuditRecord(method="m" * 10, correlation_id=12345, payload="p" * 10).to_row(4)
        assert row[1:] == ("mmmm", 12345, "", "pppp")


class TestSqliteAuditSink:
    @pytest.mark.asyncio
    async def test_append_and_query(self, tmp_path):
        sink = SqliteAuditSink(str(tmp_path / "logs" / "a2a.db"))
        audit = AuditBuffer()
        audit.record(Direction.CLIENT_TO_SERVER, "req", method="tasks/send", correlation_id=7)
        audit.record(Direction.SERVER_TO_CLIENT, "resp", method="tasks/send", correlation_id=7)
        audit.record(Direction.CLIENT_SIDE, "done")

        await sink.append(audit.rows())

        rows = await sink.query()
        assert [r[4] for r in rows] == ["done", "resp", "req"]
        sent = await sink.query(method="tasks/send")
        assert len(sent) == 2
        assert sent[0][2] == "7"

    @pytest.mark.asyncio
    async def test_empty_append_is_noop(self, tmp_path):
        db = tmp_path / "a2a.db"
        await SqliteAuditSink(str(db)).append([])
        assert not db.exists()
