import unittest
from datetime import datetime, timezone
from decimal import Decimal

from holdermap.config import settings
from holdermap.core.dto import Account, Transfer
from holdermap.core.models import ReduceOptions
from holdermap.services.graph_builder import SqrtScale, build
from holdermap.services.reducer import reduce


T0 = datetime(2024, 6, 1, tzinfo=timezone.utc)
T1 = datetime(2024, 6, 2, tzinfo=timezone.utc)


def _tx(sender, receiver, amount, ts=T0):
    return Transfer(timestamp=ts, sender=sender, receiver=receiver, amount=Decimal(str(amount)))


class DataReducerTests(unittest.TestCase):
    def _assert_invariants(self, before, after, max_nodes):
        self.assertLessEqual(len(after.nodes), max_nodes)
        self.assertEqual(
            sum((n.value for n in after.nodes.values()), Decimal("0")),
            sum((n.value for n in before.nodes.values()), Decimal("0")),
        )
        ids = set(after.nodes)
        for link in after.links:
            self.assertIn(link.source, ids)
            self.assertIn(link.target, ids)
        self.assertLessEqual(sum(1 for n in after.nodes.values() if n.is_treasury), 1)

    def test_small_graph_is_returned_unchanged(self) -> None:
        graph = build([Account("A", Decimal("1")), Account("B", Decimal("2"))], [])
        self.assertIs(reduce(graph, ReduceOptions(max_nodes=10)), graph)

    def test_uniform_holders_fit_budget_and_conserve_value(self) -> None:
        accounts = [Account(f"0.0.{i}", Decimal("1")) for i in range(2000)]
        transfers = [_tx(f"0.0.{i}", f"0.0.{i + 1}", 1) for i in range(0, 1999, 7)]
        graph = build(accounts, transfers)

        reduced = reduce(graph, ReduceOptions(max_nodes=1000))

        self._assert_invariants(graph, reduced, 1000)
        self.assertEqual(reduced.total_supply, Decimal("2000"))
        self.assertEqual(sum((n.value for n in reduced.nodes.values()), Decimal("0")), Decimal("2000"))
        self.assertTrue(all(n.is_aggregate for n in reduced.nodes.values()))

    def test_bounded_for_many_sizes_and_budgets(self) -> None:
        for size in (5, 40, 300):
            accounts = [Account(f"w{i}", Decimal(i + 1)) for i in range(size)]
            accounts[0] = Account("w0", Decimal(size * 10), is_treasury=True)
            transfers = [_tx(f"w{i}", f"w{(i * 3 + 1) % size}", i + 1) for i in range(size)]
            graph = build(accounts, transfers)
            for max_nodes in (2, 3, 10, 100):
                for fraction in (0.0, 0.001, 0.05):
                    with self.subTest(size=size, max_nodes=max_nodes, fraction=fraction):
                        reduced = reduce(graph, ReduceOptions(max_nodes=max_nodes, min_balance_fraction=fraction))
                        self._assert_invariants(graph, reduced, max_nodes)
                        self.assertIn("w0", reduced.nodes)

    def test_aggregate_collapses_internal_links_and_merges_parallel(self) -> None:
        accounts = [Account("T", Decimal("1000000"), is_treasury=True)]
        accounts += [Account(f"w{i}", Decimal("1")) for i in range(5)]
        transfers = [_tx("w1", "w2", 1), _tx("T", "w1", 10, T0), _tx("T", "w2", 20, T1)]
        graph = build(accounts, transfers)

        reduced = reduce(graph, ReduceOptions(max_nodes=3, min_balance_fraction=0.001))

        self.assertEqual(len(reduced.nodes), 2)
        agg = next(n for n in reduced.nodes.values() if n.is_aggregate)
        self.assertEqual(agg.constituent_count, 5)
        self.assertEqual(agg.value, Decimal("5"))
        self.assertEqual(agg.color, settings.COLOR_AGGREGATE)
        self.assertEqual(agg.radius, SqrtScale(graph.max_balance, (settings.NODE_RADIUS_MIN, settings.NODE_RADIUS_MAX))(Decimal("5")))

        self.assertEqual(len(reduced.links), 1)
        link = reduced.links[0]
        self.assertEqual((link.source, link.target), ("T", agg.id))
        self.assertEqual(link.value, Decimal("30"))
        self.assertEqual(link.count, 2)
        self.assertEqual(link.timestamps, (T0, T1))
        self.assertEqual(link.color, settings.COLOR_TREASURY)

    def test_significant_wallets_survive_when_budget_allows(self) -> None:
        accounts = [Account("whale", Decimal("900"))]
        accounts += [Account(f"s{i}", Decimal("1")) for i in range(100)]
        graph = build(accounts, [])

        reduced = reduce(graph, ReduceOptions(max_nodes=10, min_balance_fraction=0.01))

        self.assertIn("whale", reduced.nodes)
        self.assertFalse(reduced.nodes["whale"].is_aggregate)
        self.assertEqual(len(reduced.nodes), 2)

    def test_aggregate_ids_do_not_collide_with_wallets(self) -> None:
        accounts = [Account(settings.AGGREGATE_ID_PREFIX, Decimal("1000"))]
        accounts += [Account(f"s{i}", Decimal(i + 1)) for i in range(20)]
        graph = build(accounts, [])

        reduced = reduce(graph, ReduceOptions(max_nodes=2, min_balance_fraction=0.5))

        self.assertEqual(len(reduced.nodes), 2)
        self.assertFalse(reduced.nodes[settings.AGGREGATE_ID_PREFIX].is_aggregate)
        others = reduced.nodes[f"{settings.AGGREGATE_ID_PREFIX} #2"]
        self.assertTrue(others.is_aggregate)
        self.assertEqual(others.constituent_count, 20)

    def test_budget_below_two_rejected(self) -> None:
        graph = build([Account(f"w{i}", Decimal("1")) for i in range(5)], [])
        with self.assertRaises(ValueError):
            reduce(graph, ReduceOptions(max_nodes=1))


if __name__ == "__main__":
    unittest.main()
