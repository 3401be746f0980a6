import unittest
from datetime import datetime, timezone
from decimal import Decimal

from holdermap.core.dto import Account, Transfer
from holdermap.core.models import FilterOptions
from holdermap.services.graph_builder import build
from holdermap.services.visibility_filter import filter_graph, subtract_months, time_window, wallet_list


NOW = datetime(2024, 7, 15, 12, 0, tzinfo=timezone.utc)
RECENT = datetime(2024, 7, 1, tzinfo=timezone.utc)
OLD = datetime(2023, 1, 1, tzinfo=timezone.utc)


def _tx(sender, receiver, amount, ts):
    return Transfer(timestamp=ts, sender=sender, receiver=receiver, amount=Decimal(str(amount)))


class VisibilityFilterTests(unittest.TestCase):
    def _graph(self, transfers=None):
        accounts = [
            Account("A", Decimal("100"), is_treasury=True),
            Account("B", Decimal("50")),
            Account("C", Decimal("1")),
            Account("D", Decimal("7")),
        ]
        if transfers is None:
            transfers = [_tx("A", "B", 30, RECENT), _tx("B", "C", 1, RECENT)]
        return build(accounts, transfers)

    def test_recent_links_visible_in_six_month_window(self) -> None:
        visible = filter_graph(self._graph(), FilterOptions(months_back=6, now=NOW))

        self.assertEqual(len(visible.links), 2)
        self.assertEqual(len(visible.nodes), 4)

    def test_hidden_wallet_hides_its_links_only(self) -> None:
        visible = filter_graph(self._graph(), FilterOptions(months_back=6, hidden_ids=frozenset({"B"}), now=NOW))

        self.assertEqual(visible.links, ())
        self.assertEqual(visible.node_ids(), frozenset({"A", "C", "D"}))

    def test_time_window_uses_any_constituent_transfer(self) -> None:
        graph = self._graph([_tx("A", "B", 1, OLD), _tx("A", "B", 1, RECENT), _tx("B", "C", 1, OLD)])

        visible = filter_graph(graph, FilterOptions(months_back=1, now=NOW))

        self.assertEqual([link.key for link in visible.links], [("A", "B")])

    def test_future_transfers_are_outside_window(self) -> None:
        future = datetime(2025, 1, 1, tzinfo=timezone.utc)
        graph = self._graph([_tx("A", "B", 1, future)])

        self.assertEqual(filter_graph(graph, FilterOptions(months_back=6, now=NOW)).links, ())

    def test_naive_now_is_read_as_utc(self) -> None:
        naive_now = NOW.replace(tzinfo=None)

        visible = filter_graph(self._graph(), FilterOptions(months_back=6, now=naive_now))

        self.assertEqual(len(visible.links), 2)
        self.assertEqual(time_window(6, naive_now)[1], NOW)

    def test_no_window_shows_everything(self) -> None:
        graph = self._graph([_tx("A", "B", 1, OLD)])

        visible = filter_graph(graph, FilterOptions(months_back=None, now=NOW))

        self.assertEqual(len(visible.links), 1)

    def test_hide_isolated_policy(self) -> None:
        visible = filter_graph(self._graph(), FilterOptions(months_back=6, hide_isolated=True, now=NOW))

        self.assertEqual(visible.node_ids(), frozenset({"A", "B", "C"}))

    def test_filter_is_idempotent_and_keeps_node_identity(self) -> None:
        graph = self._graph()
        opts = FilterOptions(months_back=3, hidden_ids=frozenset({"C"}), now=NOW)

        first = filter_graph(graph, opts)
        second = filter_graph(graph, opts)

        self.assertEqual(first, second)
        for node in first.nodes:
            self.assertIs(node, graph.nodes[node.id])

    def test_everything_hidden_is_empty_not_an_error(self) -> None:
        visible = filter_graph(self._graph(), FilterOptions(hidden_ids=frozenset({"A", "B", "C", "D"}), now=NOW))

        self.assertTrue(visible.is_empty)
        self.assertEqual(visible.links, ())

    def test_subtract_months_clamps_to_month_end(self) -> None:
        self.assertEqual(
            subtract_months(datetime(2024, 3, 31, tzinfo=timezone.utc), 1),
            datetime(2024, 2, 29, tzinfo=timezone.utc),
        )
        self.assertEqual(
            subtract_months(datetime(2024, 1, 15, tzinfo=timezone.utc), 2),
            datetime(2023, 11, 15, tzinfo=timezone.utc),
        )
        self.assertEqual(time_window(6, NOW), (datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc), NOW))
        self.assertIsNone(time_window(None, NOW))

    def test_wallet_list_sorted_and_searchable(self) -> None:
        graph = self._graph()

        self.assertEqual([n.id for n in wallet_list(graph)], ["A", "B", "D", "C"])
        self.assertEqual([n.id for n in wallet_list(graph, "b")], ["B"])


if __name__ == "__main__":
    unittest.main()
