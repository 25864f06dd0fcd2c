"""Tests for door-side validation."""

import dataclasses
import threading
from datetime import datetime, timezone

import pytest

from ticketgate.errors import StoreError, ValidatorError
from ticketgate.services.credentials import decode_payload
from ticketgate.services.store import MemoryTicketStore, TicketRecord
from ticketgate.services.validator import EntryValidator, Reason


def _tamper(payload, **changes):
    cred = decode_payload(payload)
    return dataclasses.replace(cred, **changes).encode()


def _flip_digit(code, pos=0):
    return code[:pos] + str((int(code[pos]) + 1) % 10) + code[pos + 1:]


def _utc(ts):
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class TestAccept:
    def test_round_trip(self, validator, issued, mem_store, clock):
        payload, _ = issued
        result = validator.validate(payload, "door-1")
        assert result.valid is True
        assert result.reason is Reason.OK
        assert result.ticket_id == "T1"

        rec = mem_store.get_ticket_by_id("T1")
        assert rec.status == "used"
        assert rec.used_by == "door-1"
        assert rec.used_at.timestamp() == clock.now

    def test_to_dict(self, validator, issued):
        d = validator.validate(issued[0], "door-1").to_dict()
        assert d == {
            "valid": True, "reason": "OK",
            "message": "Ticket validated successfully", "ticket_id": "T1",
        }


class TestReplay:
    def test_second_scan_rejected(self, validator, issued, clock):
        payload, _ = issued
        assert validator.validate(payload, "door-1").valid
        clock.advance(10)
        again = validator.validate(payload, "door-2")
        assert again.valid is False
        assert again.reason is Reason.ALREADY_USED

    def test_used_at_without_used_status(self, validator, issued, mem_store, clock):
        payload, secret = issued
        mem_store.add(TicketRecord("T1", "user-1", secret, "valid",
                                   used_at=_utc(clock.now), used_by="x"))
        result = validator.validate(payload, "door-1")
        assert result.reason is Reason.ALREADY_USED

    def test_lost_race_reports_already_used(self, issued, mem_store, clock):
        payload, _ = issued
        stale = mem_store.get_ticket_by_id("T1")

        class StaleStore(MemoryTicketStore):
            def get_ticket_by_id(self, ticket_id):
                return stale

            def conditional_update_status(self, *args, **kwargs):
                return mem_store.conditional_update_status(*args, **kwargs)

        assert EntryValidator(mem_store, clock=clock).validate(payload, "door-1").valid
        result = EntryValidator(StaleStore(), clock=clock).validate(payload, "door-2")
        assert result.reason is Reason.ALREADY_USED
        assert mem_store.get_ticket_by_id("T1").used_by == "door-1"


class TestConcurrentScans:
    def test_two_scanners_read_before_either_writes(self, issuer, clock):
        payload, secret = issuer.issue("T1", "user-1")
        barrier = threading.Barrier(2, timeout=5)

        class BarrierStore(MemoryTicketStore):
            def get_ticket_by_id(self, ticket_id):
                rec = super().get_ticket_by_id(ticket_id)
                barrier.wait()
                return rec

        store = BarrierStore()
        store.add(TicketRecord("T1", "user-1", secret, "valid"))
        v = EntryValidator(store, clock=clock)
        results = []

        def scan(scanner):
            results.append(v.validate(payload, scanner))

        threads = [threading.Thread(target=scan, args=(f"door-{i}",)) for i in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(r.valid for r in results) == [False, True]
        loser = next(r for r in results if not r.valid)
        assert loser.reason is Reason.ALREADY_USED

    def test_many_scanners_admit_exactly_one(self, validator, issued):
        payload, _ = issued
        start = threading.Event()
        results = []
        lock = threading.Lock()

        def scan(scanner):
            start.wait()
            r = validator.validate(payload, scanner)
            with lock:
                results.append(r)

        threads = [threading.Thread(target=scan, args=(f"door-{i}",)) for i in range(16)]
        for t in threads:
            t.start()
        start.set()
        for t in threads:
            t.join()

        assert sum(r.valid for r in results) == 1
        assert all(r.reason is Reason.ALREADY_USED for r in results if not r.valid)


class TestRejections:
    def test_malformed(self, validator):
        result = validator.validate("{not json", "door-1")
        assert result.reason is Reason.MALFORMED_PAYLOAD
        assert result.ticket_id is None

    def test_deeply_nested_payload_is_malformed(self, validator):
        result = validator.validate("[" * 100000 + "]" * 100000, "door-1")
        assert result.valid is False
        assert result.reason is Reason.MALFORMED_PAYLOAD

    def test_stale_payload(self, validator, issued, clock, mem_store):
        clock.advance(301)
        result = validator.validate(issued[0], "door-1")
        assert result.reason is Reason.PAYLOAD_EXPIRED
        assert mem_store.get_ticket_by_id("T1").status == "valid"

    def test_age_exactly_at_bound_passes_staleness(self, issuer, mem_store, clock):
        v = EntryValidator(mem_store, window=20, clock=clock)
        payload, secret = issuer.issue("T9", "user-9")
        mem_store.add(TicketRecord("T9", "user-9", secret, "valid"))
        clock.advance(300)
        assert v.validate(payload, "door-1").valid

    def test_future_dated_payload(self, validator, issued, clock):
        payload = _tamper(issued[0], issued_at_ms=int((clock.now + 3600) * 1000))
        assert validator.validate(payload, "door-1").reason is Reason.PAYLOAD_EXPIRED

    def test_ticket_not_found(self, validator, issued):
        payload = _tamper(issued[0], ticket_id="nope")
        result = validator.validate(payload, "door-1")
        assert result.reason is Reason.TICKET_NOT_FOUND
        assert result.ticket_id == "nope"

    @pytest.mark.parametrize("status, word", [("refunded", "refunded"), ("cancelled", "cancelled")])
    def test_terminal_status(self, validator, issued, mem_store, status, word):
        payload, secret = issued
        mem_store.add(TicketRecord("T1", "user-1", secret, status))
        result = validator.validate(payload, "door-1")
        assert result.valid is False
        assert result.reason is Reason.INVALID_STATUS
        assert word in result.message

    def test_owner_mismatch_with_correct_code(self, validator, issued, mem_store):
        payload = _tamper(issued[0], owner_id="user-2")
        result = validator.validate(payload, "door-1")
        assert result.reason is Reason.OWNER_MISMATCH
        assert mem_store.get_ticket_by_id("T1").status == "valid"

    @pytest.mark.parametrize("pos", [0, 3, 7])
    def test_mutated_code(self, validator, issued, mem_store, pos):
        cred = decode_payload(issued[0])
        payload = _tamper(issued[0], code=_flip_digit(cred.code, pos))
        assert validator.validate(payload, "door-1").reason is Reason.CODE_INVALID
        assert mem_store.get_ticket_by_id("T1").status == "valid"


class TestTimeWindow:
    @pytest.mark.parametrize("offset", [-30, 0, 29, 30, 59])
    def test_within_tolerance(self, validator, issued, clock, offset):
        clock.advance(offset)
        assert validator.validate(issued[0], "door-1").valid

    @pytest.mark.parametrize("offset", [60, 90, -31])
    def test_outside_tolerance(self, validator, issued, clock, offset):
        clock.advance(offset)
        assert validator.validate(issued[0], "door-1").reason is Reason.CODE_INVALID

    def test_configurable_window(self, issuer, mem_store, clock):
        payload, secret = issuer.issue("T1", "user-1")
        mem_store.add(TicketRecord("T1", "user-1", secret, "valid"))
        clock.advance(90)
        strict = EntryValidator(mem_store, window=1, clock=clock)
        assert strict.validate(payload, "door-1").reason is Reason.CODE_INVALID
        loose = EntryValidator(mem_store, window=3, clock=clock)
        assert loose.validate(payload, "door-1").valid


class TestFaults:
    def test_store_failure_raises(self, issued, clock):
        class DownStore(MemoryTicketStore):
            def get_ticket_by_id(self, ticket_id):
                raise StoreError("connection refused")

        with pytest.raises(ValidatorError):
            EntryValidator(DownStore(), clock=clock).validate(issued[0], "door-1")

    def test_commit_failure_raises(self, issued, mem_store, clock):
        class ReadOnlyStore(MemoryTicketStore):
            def get_ticket_by_id(self, ticket_id):
                return mem_store.get_ticket_by_id(ticket_id)

            def conditional_update_status(self, *args, **kwargs):
                raise StoreError("read-only replica")

        with pytest.raises(ValidatorError):
            EntryValidator(ReadOnlyStore(), clock=clock).validate(issued[0], "door-1")

    def test_corrupt_secret_raises(self, validator, issued, mem_store):
        mem_store.add(TicketRecord("T1", "user-1", "zz-not-hex", "valid"))
        with pytest.raises(ValidatorError):
            validator.validate(issued[0], "door-1")


class TestScenario:
    def test_door_sequence(self, issuer, mem_store, validator, clock):
        p1, s1 = issuer.issue("T1", "user-1")
        _, s2 = issuer.issue("T2", "user-1")
        mem_store.add(TicketRecord("T1", "user-1", s1, "valid"))
        mem_store.add(TicketRecord("T2", "user-1", s2, "valid"))

        clock.advance(10)
        assert validator.validate(p1, "door-1").valid

        clock.advance(10)
        assert validator.validate(p1, "door-1").reason is Reason.ALREADY_USED

        # T1's code presented for T2
        forged = _tamper(p1, ticket_id="T2")
        assert validator.validate(forged, "door-1").reason is Reason.CODE_INVALID

        unknown = _tamper(p1, ticket_id="T3")
        assert validator.validate(unknown, "door-1").reason is Reason.TICKET_NOT_FOUND
