"""
Tests for matching extended journeys against the original connections.

The original connection is A -> B. Extensions start at P (before A) or end
at Q (after B).
"""

from logic import Price, hash_legs, update_cheapest
from builders import make_journey, make_leg

P_A = make_leg("P", "A", "07:00", "07:55")
A_B = make_leg("A", "B", "08:00", "09:00")
B_Q = make_leg("B", "Q", "09:05", "09:40")


def _journey_map(price=50.0):
    original = make_journey(A_B, price=price)
    return {hash_legs(original.legs): original}


class TestDiscardedCandidates:

    def test_missing_price(self):
        journey_map = _journey_map()
        assert update_cheapest(journey_map, make_journey(P_A, A_B), "A", "B") is False
        assert journey_map[hash_legs([A_B])].price_amount == 50.0

    def test_unknown_price_amount(self):
        journey_map = _journey_map()
        candidate = make_journey(P_A, A_B)
        candidate.price = Price(amount=None, currency="EUR")
        assert update_cheapest(journey_map, candidate, "A", "B") is False
        assert journey_map[hash_legs([A_B])].trick is None

    def test_origin_never_reached(self):
        journey_map = _journey_map()
        candidate = make_journey(make_leg("P", "C"), make_leg("C", "Q"), price=10.0)
        assert update_cheapest(journey_map, candidate, "A", "B") is False
        assert len(journey_map) == 1

    def test_destination_never_reached(self):
        """Trimming the back consumes every leg when B is never an arrival stop."""
        journey_map = _journey_map()
        candidate = make_journey(P_A, make_leg("A", "C", "08:00", "09:00"), price=10.0)
        assert update_cheapest(journey_map, candidate, "A", "B") is False
        assert list(journey_map.values())[0].trick is None

    def test_unseen_connection_is_not_added(self):
        journey_map = _journey_map()
        other_train = make_leg("A", "B", "10:00", "11:00")
        candidate = make_journey(P_A, other_train, price=10.0)
        assert update_cheapest(journey_map, candidate, "A", "B") is False
        assert list(journey_map) == [hash_legs([A_B])]

    def test_empty_map(self):
        journey_map = {}
        assert update_cheapest(journey_map, make_journey(P_A, A_B, price=10.0), "A", "B") is False
        assert journey_map == {}

    def test_original_without_price(self):
        original = make_journey(A_B)
        journey_map = {hash_legs([A_B]): original}
        assert update_cheapest(journey_map, make_journey(P_A, A_B, price=10.0), "A", "B") is False
        assert journey_map[hash_legs([A_B])] is original

    def test_equal_price_is_not_an_improvement(self):
        journey_map = _journey_map(50.0)
        original = journey_map[hash_legs([A_B])]
        assert update_cheapest(journey_map, make_journey(P_A, A_B, price=50.0), "A", "B") is False
        assert journey_map[hash_legs([A_B])] is original

    def test_more_expensive(self):
        journey_map = _journey_map(50.0)
        assert update_cheapest(journey_map, make_journey(A_B, B_Q, price=70.0), "A", "B") is False
        assert journey_map[hash_legs([A_B])].price_amount == 50.0


class TestImprovements:

    def test_prepended_extension(self):
        journey_map = _journey_map(50.0)
        assert update_cheapest(journey_map, make_journey(P_A, A_B, price=40.0), "A", "B") is True

        stored = journey_map[hash_legs([A_B])]
        assert stored.price_amount == 40.0
        assert stored.legs == [A_B]
        assert stored.trick.prepend == [P_A]
        assert stored.trick.append == []
        assert stored.trick.old_price == 50.0
        assert stored.saving == 10.0

    def test_appended_extension(self):
        journey_map = _journey_map(50.0)
        assert update_cheapest(journey_map, make_journey(A_B, B_Q, price=35.0), "A", "B") is True

        stored = journey_map[hash_legs([A_B])]
        assert stored.legs == [A_B]
        assert stored.trick.prepend == []
        assert stored.trick.append == [B_Q]

    def test_multi_leg_extensions_keep_order(self):
        p2_p1 = make_leg("P2", "P1", "06:00", "06:30")
        p1_a = make_leg("P1", "A", "06:40", "07:50")
        b_q1 = make_leg("B", "Q1", "09:10", "09:30")
        q1_q2 = make_leg("Q1", "Q2", "09:40", "10:00")
        journey_map = _journey_map(50.0)

        candidate = make_journey(p2_p1, p1_a, A_B, b_q1, q1_q2, price=30.0)
        assert update_cheapest(journey_map, candidate, "A", "B") is True

        stored = journey_map[hash_legs([A_B])]
        assert stored.trick.prepend == [p2_p1, p1_a]
        assert stored.trick.append == [b_q1, q1_q2]

    def test_multi_leg_original_connection(self):
        a_m = make_leg("A", "M", "08:00", "08:30")
        m_b = make_leg("M", "B", "08:40", "09:00")
        original = make_journey(a_m, m_b, price=60.0)
        journey_map = {hash_legs(original.legs): original}

        assert update_cheapest(journey_map, make_journey(P_A, a_m, m_b, B_Q, price=45.0), "A", "B") is True
        assert journey_map[hash_legs([a_m, m_b])].legs == [a_m, m_b]

    def test_candidate_is_not_modified(self):
        journey_map = _journey_map(50.0)
        candidate = make_journey(P_A, A_B, B_Q, price=40.0)
        update_cheapest(journey_map, candidate, "A", "B")

        assert candidate.legs == [P_A, A_B, B_Q]
        assert candidate.trick is None

    def test_chained_improvements_keep_first_price(self):
        """A (100) improved by B (80) improved by C (60) still reports 100."""
        journey_map = _journey_map(100.0)
        assert update_cheapest(journey_map, make_journey(P_A, A_B, price=80.0), "A", "B") is True
        assert update_cheapest(journey_map, make_journey(A_B, B_Q, price=60.0), "A", "B") is True

        stored = journey_map[hash_legs([A_B])]
        assert stored.price_amount == 60.0
        assert stored.trick.old_price == 100.0
        assert stored.trick.append == [B_Q]
        assert stored.trick.prepend == []

    def test_idempotent(self):
        journey_map = _journey_map(50.0)
        candidate = make_journey(P_A, A_B, price=40.0)

        assert update_cheapest(journey_map, candidate, "A", "B") is True
        snapshot = {k: v.model_dump() for k, v in journey_map.items()}

        assert update_cheapest(journey_map, candidate, "A", "B") is False
        assert {k: v.model_dump() for k, v in journey_map.items()} == snapshot
