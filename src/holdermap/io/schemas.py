from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable

from holdermap.core.models import Graph, Link, Node, PositionedLink, PositionedNode
from holdermap.core.viewport import ViewportTransform


def _dec_to_str(x: Decimal) -> str:
    # keep as string for JSON precision safety
    return format(x, "f")


def node_to_dict(n: Node) -> Dict[str, Any]:
    return {
        "id": n.id,
        "value": _dec_to_str(n.value),
        "percentage": round(n.percentage, 6),
        "radius": round(n.radius, 3),
        "color": n.color,
        "is_treasury": n.is_treasury,
        "is_aggregate": n.is_aggregate,
        "constituent_count": n.constituent_count,
    }


def link_to_dict(link: Link) -> Dict[str, Any]:
    return {
        "source": link.source,
        "target": link.target,
        "value": _dec_to_str(link.value),
        "count": link.count,
        "timestamp": link.timestamp.isoformat() if link.timestamp else None,
        "timestamps": [t.isoformat() for t in link.timestamps],
        "color": link.color,
    }


def graph_to_dict(g: Graph) -> Dict[str, Any]:
    return {
        "total_supply": _dec_to_str(g.total_supply),
        "treasury_id": g.treasury_id,
        "max_balance": _dec_to_str(g.max_balance),
        "nodes": [node_to_dict(n) for n in g.nodes.values()],
        "links": [link_to_dict(link) for link in g.links],
    }


def frame_to_dict(
    graph: Graph,
    nodes: Iterable[PositionedNode],
    links: Iterable[PositionedLink],
    viewport: ViewportTransform,
) -> Dict[str, Any]:
    """
    What a renderer needs for one frame: laid-out visible nodes and links.
    """
    return {
        "total_supply": _dec_to_str(graph.total_supply),
        "treasury_id": graph.treasury_id,
        "viewport": {
            "translate_x": viewport.translate_x,
            "translate_y": viewport.translate_y,
            "scale": viewport.scale,
        },
        "nodes": [
            {**node_to_dict(p.node), "x": round(p.x, 3), "y": round(p.y, 3)}
            for p in nodes
        ],
        "links": [
            {
                **link_to_dict(p.link),
                "source_x": round(p.source_x, 3),
                "source_y": round(p.source_y, 3),
                "target_x": round(p.target_x, 3),
                "target_y": round(p.target_y, 3),
            }
            for p in links
        ],
    }
