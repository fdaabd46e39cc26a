"""
Locked per-tenant counters.
"""

from ledger_kernel.services.sequence_service import SequenceService


class TestNextValue:

    def test_starts_at_one_and_increments(self, sequence_service):
        assert [sequence_service.next_value("CE") for _ in range(3)] == [1, 2, 3]
        assert sequence_service.current_value("CE") == 3

    def test_series_are_independent(self, sequence_service):
        sequence_service.next_value("CE")
        sequence_service.next_value("CE")
        assert sequence_service.next_value("GTO") == 1

    def test_tenants_are_independent(self, sequence_service, session, other_tenant):
        sequence_service.next_value("POS")
        other = SequenceService(session, other_tenant)
        assert other.next_value("POS") == 1
        assert sequence_service.next_value("POS") == 2

    def test_seed_only_consulted_on_creation(self, sequence_service):
        calls = []

        def seed():
            calls.append(1)
            return 41

        assert sequence_service.next_value("CRT-2025", seed=seed) == 42
        assert sequence_service.next_value("CRT-2025", seed=seed) == 43
        assert len(calls) == 1

    def test_unknown_series_has_no_current_value(self, sequence_service):
        assert sequence_service.current_value("NOPE") is None


def test_next_number_formats_scope(sequence_service):
    assert sequence_service.next_number("CRT", 5, scope=2025) == "CRT-2025-00001"
    assert sequence_service.next_number("CRT", 5, scope=2026) == "CRT-2026-00001"
    assert sequence_service.next_number("POS", 5) == "POS-00001"
