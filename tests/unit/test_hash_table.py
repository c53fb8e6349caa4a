"""
Unit Tests - Multi-Hash Table
"""
import pytest

from electronica_dw.join import MultiHashTable, StreamRecord


class TestMultiHashTable:
    """Tests for MultiHashTable"""

    def test_add_creates_bucket(self):
        """First record for a key creates its bucket"""
        table = MultiHashTable()
        table.add(StreamRecord(product_id=3, customer_id=2))

        assert 3 in table
        assert table[3] == [StreamRecord(3, 2)]
        assert len(table) == 1

    def test_bucket_keeps_arrival_order(self):
        """Records sharing a key stay in arrival order"""
        table = MultiHashTable()
        for customer_id in (9, 1, 5):
            table.add(StreamRecord(product_id=5, customer_id=customer_id))

        assert [r.customer_id for r in table[5]] == [9, 1, 5]

    def test_repeated_records_are_not_deduplicated(self):
        """The same pair added twice appears twice"""
        table = MultiHashTable()
        table.add(StreamRecord(5, 1))
        table.add(StreamRecord(5, 1))

        assert table[5] == [StreamRecord(5, 1), StreamRecord(5, 1)]
        assert table.total_records == 2

    def test_records_only_in_their_own_bucket(self):
        """Each record lands under its own key and nowhere else"""
        table = MultiHashTable()
        records = [StreamRecord(3, 2), StreamRecord(5, 1), StreamRecord(5, 3)]
        for record in records:
            table.add(record)

        assert sorted(table.keys()) == [3, 5]
        assert table[3] == [StreamRecord(3, 2)]
        assert table[5] == [StreamRecord(5, 1), StreamRecord(5, 3)]
        assert sum(len(table[k]) for k in table) == len(records)

    def test_unknown_key(self):
        """Unknown keys have an empty bucket but no entry"""
        table = MultiHashTable()

        assert table.bucket(42) == []
        assert 42 not in table
        with pytest.raises(KeyError):
            table[42]

    def test_bucket_is_a_copy(self):
        """Callers cannot mutate the table through a returned bucket"""
        table = MultiHashTable()
        table.add(StreamRecord(1, 1))

        table.bucket(1).append(StreamRecord(1, 2))

        assert table.total_records == 1
        assert table[1] == [StreamRecord(1, 1)]
