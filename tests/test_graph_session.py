import random
import unittest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

from holdermap.adapters.scheduler.manual_scheduler import ManualFrameScheduler
from holdermap.core.errors import MalformedInputError
from holdermap.core.models import FilterOptions, Link, ReduceOptions, VisibleGraph
from holdermap.layout.simulation import LayoutParams, SimulationState
from holdermap.services.graph_session import GraphSession


NOW = datetime(2024, 7, 15, tzinfo=timezone.utc)

HOLDERS = """account,balance,isTreasury
A,100,true
B,50,false
C,1,false
D,3,false
"""

TRANSFERS = """timestamp,sender,receiver,amount
2024-07-01T00:00:00Z,A,B,30
2024-07-02T00:00:00Z,B,C,1
2023-01-01T00:00:00Z,C,D,2
"""

FAST = LayoutParams(alpha_decay_factor=0.8)


class GraphSessionTests(unittest.TestCase):
    def _session(self, **kwargs):
        kwargs.setdefault("filter_options", FilterOptions(months_back=6, now=NOW))
        kwargs.setdefault("layout_params", FAST)
        kwargs.setdefault("rng", random.Random(1))
        session = GraphSession(**kwargs)
        session.load(HOLDERS, TRANSFERS)
        return session

    def test_load_builds_filters_and_seeds_layout(self) -> None:
        session = self._session()

        self.assertEqual(session.graph.treasury_id, "A")
        self.assertEqual(len(session.graph.links), 3)
        self.assertEqual(len(session.visible.links), 2)
        self.assertEqual(session.simulation.state, SimulationState.SEEDING)
        self.assertEqual({n.node.id for n in session.get_visible_nodes()}, {"A", "B", "C", "D"})
        self.assertEqual(len(session.get_visible_links()), 2)
        self.assertFalse(session.is_empty)

    def test_malformed_input_propagates_from_load(self) -> None:
        session = GraphSession()
        with self.assertRaises(MalformedInputError):
            session.load("account\nA\n", "")

    def test_toggle_wallet_hides_and_restores_with_same_position(self) -> None:
        session = self._session()
        session.settle()
        before = session.simulation.position("B")

        self.assertFalse(session.toggle_wallet("B"))
        self.assertNotIn("B", session.visible.node_ids())
        self.assertEqual(session.visible.links, ())
        self.assertEqual(session.simulation.state, SimulationState.REHEATED)

        self.assertTrue(session.toggle_wallet("B"))
        self.assertEqual(session.simulation.position("B"), before)
        self.assertIs(
            next(n for n in session.visible.nodes if n.id == "B"),
            session.graph.nodes["B"],
        )

    def test_time_filter_change(self) -> None:
        session = self._session()

        session.set_filter(months_back=None)
        self.assertEqual(len(session.visible.links), 3)

        session.set_filter(months_back=0)
        self.assertEqual(session.visible.links, ())

    def test_hiding_everything_is_empty_state(self) -> None:
        session = self._session()

        session.set_filter(hidden_ids={"A", "B", "C", "D"})

        self.assertTrue(session.is_empty)
        self.assertEqual(session.get_visible_nodes(), [])
        self.assertEqual(session.simulation.state, SimulationState.IDLE)
        self.assertIsNone(session.last_error)

    def test_hiding_dragged_node_ends_drag(self) -> None:
        session = self._session()
        session.drag_start("B", (0.0, 0.0))
        self.assertEqual(session.controller.dragged_id, "B")

        session.toggle_wallet("B")

        self.assertIsNone(session.controller.dragged_id)
        self.assertEqual(session.simulation.alpha_target, 0.0)
        self.assertIsNone(session.last_error)

    def test_dangling_link_halts_until_rebuild(self) -> None:
        scheduler = ManualFrameScheduler()
        session = self._session(scheduler=scheduler)
        node_a = session.graph.nodes["A"]
        bad = Link(source="A", target="ghost", value=Decimal("1"), count=1, timestamps=(NOW,), color="#42C7FF")

        with patch(
            "holdermap.services.graph_session.filter_graph",
            return_value=VisibleGraph(nodes=(node_a,), links=(bad,)),
        ):
            session.set_filter(months_back=3)

        self.assertTrue(session.rebuild_required)
        self.assertIn("ghost", session.last_error)
        self.assertEqual(scheduler.pending, 0)

        session.hover("A")
        self.assertTrue(session.rebuild_required)
        self.assertIsNotNone(session.last_error)

        session.rebuild()
        self.assertFalse(session.rebuild_required)
        self.assertIsNone(session.last_error)
        self.assertEqual(scheduler.pending, 1)

    def test_pointer_errors_are_recorded_not_raised(self) -> None:
        session = self._session()

        session.drag_start("ghost", (0.0, 0.0))
        self.assertIn("ghost", session.last_error)

        session.hover("A")
        self.assertIsNone(session.last_error)
        self.assertEqual(session.get_hovered_node().id, "A")
        self.assertEqual(session.get_selected_neighbors(), frozenset({"B"}))

    def test_frames_drive_layout_until_close(self) -> None:
        scheduler = ManualFrameScheduler()
        session = self._session(scheduler=scheduler)
        ticks = []
        session.on_frame(lambda sim: ticks.append(sim.ticks))

        scheduler.pump(3)
        self.assertEqual(ticks, [1, 2, 3])

        session.close()
        self.assertEqual(scheduler.pending, 0)
        self.assertEqual(scheduler.pump(), 0)

    def test_viewport_culling(self) -> None:
        session = self._session()
        session.settle()
        session.wheel(-1000, (0.0, 0.0))
        vp = session.get_viewport_transform()
        self.assertEqual(vp.scale, 4.0)

        everything = session.get_visible_nodes()
        culled = session.get_visible_nodes(viewport_size=(1.0, 1.0))

        self.assertEqual(len(everything), 4)
        bounds = vp.bounds(1.0, 1.0)
        for item in culled:
            self.assertTrue(bounds.contains(item.x, item.y, margin=item.node.radius))
        self.assertLessEqual(len(culled), len(everything))

    def test_reduce_options_rebuild(self) -> None:
        session = self._session()

        session.set_reduce_options(ReduceOptions(max_nodes=2, min_balance_fraction=0.5))

        self.assertEqual(len(session.graph.nodes), 2)
        self.assertIn("A", session.graph.nodes)
        self.assertEqual(
            sum((n.value for n in session.graph.nodes.values()), Decimal("0")),
            Decimal("154"),
        )

    def test_rejected_window_keeps_previous_filter(self) -> None:
        session = self._session()
        before = session.visible

        session.set_filter(months_back=-1)

        self.assertIn("months_back", session.last_error)
        self.assertEqual(session.filter_options.months_back, 6)
        self.assertIs(session.visible, before)

        self.assertFalse(session.toggle_wallet("B"))
        self.assertIsNone(session.last_error)
        self.assertEqual(session.filter_options.hidden_ids, frozenset({"B"}))
        self.assertNotIn("B", session.visible.node_ids())

    def test_rejected_reduce_options_keep_previous_budget(self) -> None:
        session = self._session()
        previous = session.reduce_options
        graph = session.graph

        with self.assertRaises(ValueError):
            session.set_reduce_options(ReduceOptions(max_nodes=1))

        self.assertIs(session.reduce_options, previous)
        self.assertIs(session.graph, graph)
        session.load(HOLDERS, TRANSFERS)
        self.assertEqual(len(session.graph.nodes), 4)

    def test_rejected_reduce_options_before_load(self) -> None:
        session = GraphSession(filter_options=FilterOptions(months_back=6, now=NOW))

        with self.assertRaises(ValueError):
            session.set_reduce_options(ReduceOptions(max_nodes=1))

        self.assertEqual(session.reduce_options, ReduceOptions())
        session.load(HOLDERS, TRANSFERS)
        self.assertEqual(len(session.graph.nodes), 4)

    def test_extreme_wheel_delta_clamps_zoom(self) -> None:
        session = self._session()

        session.wheel(-600000, (0.0, 0.0))
        self.assertIsNone(session.last_error)
        self.assertEqual(session.get_viewport_transform().scale, 4.0)

        session.wheel(float("inf"), (0.0, 0.0))
        self.assertIn("wheel", session.last_error)
        self.assertEqual(session.get_viewport_transform().scale, 4.0)

    def test_wallet_search(self) -> None:
        session = self._session()

        self.assertEqual([n.id for n in session.wallets()], ["A", "B", "D", "C"])
        self.assertEqual(session.wallets("c")[0].id, "C")
        self.assertEqual(GraphSession().wallets(), [])


if __name__ == "__main__":
    unittest.main()
