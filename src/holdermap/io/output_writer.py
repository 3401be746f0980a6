from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from holdermap.config import settings
from holdermap.core.models import FilterOptions, Graph, VisibleGraph
from holdermap.io.formatters import format_number, format_percentage, short_id


def write_graph_json(frame: Dict[str, Any], out_dir: str, filename: str = "graph.json") -> str:
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)

    out_path = p / filename
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(frame, f, indent=2)

    return str(out_path)


def write_summary_md(
    graph: Graph,
    visible: VisibleGraph,
    out_dir: str,
    filename: str = "summary.md",
    token_id: Optional[str] = None,
    filter_options: Optional[FilterOptions] = None,
) -> str:
    """
    Holder-distribution summary for the rendered view.
    """
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)

    out_path = p / filename

    wallets = [n for n in graph.nodes.values() if not n.is_aggregate]
    aggregates = [n for n in graph.nodes.values() if n.is_aggregate]
    top_holders = sorted(wallets, key=lambda n: n.value, reverse=True)[:10]
    top_links = sorted(visible.links, key=lambda link: link.value, reverse=True)[:15]

    def concentration() -> str:
        if graph.total_supply <= 0:
            return "No tokens are held by any account, so there is no distribution to describe."
        top_share = sum(n.percentage for n in top_holders)
        if top_share >= 80:
            return (
                f"Supply is highly concentrated: the top {len(top_holders)} wallets hold "
                f"{format_percentage(top_share)} of it."
            )
        if top_share >= 40:
            return (
                f"Supply is moderately concentrated: the top {len(top_holders)} wallets hold "
                f"{format_percentage(top_share)} of it."
            )
        return (
            f"Supply is widely distributed: the top {len(top_holders)} wallets hold only "
            f"{format_percentage(top_share)} of it."
        )

    lines = []
    lines.append("# Holder Map Summary\n")
    if token_id:
        lines.append(f"- Token: **{token_id}**\n")
    lines.append(f"- Nodes: **{len(graph.nodes)}** ({len(visible.nodes)} visible)\n")
    lines.append(f"- Links: **{len(graph.links)}** ({len(visible.links)} visible)\n")
    lines.append(f"- Total supply: **{format_number(graph.total_supply)}**\n")
    lines.append(f"- Treasury: **{graph.treasury_id or 'not flagged'}**\n")
    if filter_options is not None:
        window = "all time" if filter_options.months_back is None else f"last {filter_options.months_back} month(s)"
        lines.append(f"- Window: **{window}**\n")
        if filter_options.hidden_ids:
            lines.append(f"- Hidden wallets: {', '.join(sorted(filter_options.hidden_ids))}\n")
    lines.append("\n")

    lines.append("## Top 10 Holders\n\n")
    if not top_holders:
        lines.append("_No holders with a positive balance._\n\n")
    else:
        for n in top_holders:
            tag = " (treasury)" if n.is_treasury else ""
            lines.append(f"- **{format_percentage(n.percentage)}** | {format_number(n.value)} | {n.id}{tag}\n")
        lines.append("\n")

    lines.append("## Concentration\n\n")
    lines.append(f"{concentration()}\n\n")

    lines.append("## Aggregated Wallets\n\n")
    if not aggregates:
        lines.append("_Every wallet is drawn individually._\n\n")
    else:
        for n in aggregates:
            lines.append(
                f"- **{n.id}**: {n.constituent_count} wallets, "
                f"{format_number(n.value)} ({format_percentage(n.percentage)})\n"
            )
        lines.append("\n")

    lines.append("## Top Flows in Window (by amount)\n\n")
    if not top_links:
        lines.append("_No transfers in the selected window._\n")
    else:
        for link in top_links:
            when = link.timestamp.date().isoformat() if link.timestamp else "unknown"
            lines.append(
                f"- **{format_number(link.value)}** | {short_id(link.source)} -> {short_id(link.target)} "
                f"| {link.count} transfer(s), latest {when}\n"
            )

    with out_path.open("w", encoding="utf-8") as f:
        f.writelines(lines)

    return str(out_path)


_HTML_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>Holder Map</title>
  <style>
    html, body { height: 100%; margin: 0; }
    body {
      display: flex;
      flex-direction: column;
      font: 13px/1.4 system-ui, sans-serif;
      background: #0a0e1a;
      color: #dfe6f5;
    }
    .bar {
      display: flex;
      align-items: baseline;
      gap: 16px;
      padding: 10px 18px;
      background: #121a2e;
    }
    .bar strong { font-size: 16px; }
    .bar small { color: #7d8aa6; }
    main { flex: 1; display: flex; min-height: 0; }
    #graph { flex: 1; }
    aside {
      width: 280px;
      overflow-y: auto;
      padding: 10px 14px;
      background: #121a2e;
    }
    aside h3 { margin: 12px 0 4px; font-size: 12px; color: #7d8aa6; }
    .key i {
      display: inline-block;
      width: 9px;
      height: 9px;
      border-radius: 50%;
      margin-right: 6px;
    }
    #wallets { list-style: none; margin: 0; padding: 0; }
    #wallets li { display: flex; justify-content: space-between; padding: 2px 0; cursor: pointer; }
    #wallets li span:last-child { color: #7d8aa6; }
  </style>
</head>
<body>
  <div class="bar"><strong>Holder Map</strong><small id="stats">Loading __DATA_FILE__</small></div>
  <main>
    <div id="graph"></div>
    <aside>
      <h3>Key</h3>
      <div class="key"><i style="background:__C_TREASURY__"></i>Treasury</div>
      <div class="key"><i style="background:__C_HIGH__"></i>More than __HIGH__% of supply</div>
      <div class="key"><i style="background:__C_MEDIUM__"></i>More than __MEDIUM__% of supply</div>
      <div class="key"><i style="background:__C_LOW__"></i>Smaller holders</div>
      <div class="key"><i style="background:__C_AGGREGATE__"></i>Aggregated wallets</div>
      <h3>Wallets</h3>
      <ul id="wallets"></ul>
    </aside>
  </main>
  <script src="https://unpkg.com/vis-network/standalone/umd/vis-network.min.js"></script>
  <script>
    const stats = document.getElementById("stats");
    fetch("./__DATA_FILE__")
      .then((resp) => resp.json())
      .then((frame) => {
        if (!frame.nodes.length) {
          stats.textContent = "Nothing to show for this filter.";
          return;
        }
        if (!window.vis) {
          stats.textContent = "vis-network did not load.";
          return;
        }
        const nodes = new vis.DataSet(frame.nodes.map((n) => ({
          id: n.id,
          x: n.x,
          y: n.y,
          size: n.radius,
          shape: "dot",
          color: n.color,
          label: n.is_aggregate ? n.id : undefined,
          title: n.id + ": " + n.value + " (" + n.percentage.toFixed(2) + "%)",
        })));
        const edges = new vis.DataSet(frame.links.map((l) => ({
          from: l.source,
          to: l.target,
          arrows: "to",
          color: { color: l.color, opacity: 0.5 },
          title: l.value + " over " + l.count + " transfer(s)",
        })));
        const net = new vis.Network(document.getElementById("graph"), { nodes, edges }, {
          physics: false,
          interaction: { hover: true },
          edges: { smooth: false },
        });
        // layout is centred on the origin
        net.moveTo({ position: { x: 0, y: 0 }, scale: frame.viewport.scale });

        const list = document.getElementById("wallets");
        frame.nodes
          .slice()
          .sort((a, b) => b.percentage - a.percentage)
          .forEach((n) => {
            const li = document.createElement("li");
            li.innerHTML = "<span></span><span></span>";
            li.firstChild.textContent = n.id;
            li.lastChild.textContent = n.percentage.toFixed(2) + "%";
            li.onclick = () => net.focus(n.id, { scale: 1.5 });
            list.appendChild(li);
          });
        stats.textContent = frame.nodes.length + " wallets, " + frame.links.length + " flows";
      })
      .catch((err) => {
        stats.textContent = "Could not read __DATA_FILE__: " + err;
      });
  </script>
</body>
</html>
"""


def write_graph_html(out_dir: str, filename: str = "index.html", data_file: str = "graph.json") -> str:
    """
    Static viewer for a written frame; positions come precomputed, vis-network only draws.
    """
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)

    substitutions = {
        "__DATA_FILE__": data_file,
        "__C_TREASURY__": settings.COLOR_TREASURY,
        "__C_HIGH__": settings.COLOR_HIGH,
        "__C_MEDIUM__": settings.COLOR_MEDIUM,
        "__C_LOW__": settings.COLOR_LOW,
        "__C_AGGREGATE__": settings.COLOR_AGGREGATE,
        "__HIGH__": f"{settings.HIGH_SHARE_PCT:g}",
        "__MEDIUM__": f"{settings.MEDIUM_SHARE_PCT:g}",
    }
    html = _HTML_TEMPLATE
    for marker, value in substitutions.items():
        html = html.replace(marker, value)

    out_path = p / filename
    out_path.write_text(html, encoding="utf-8")
    return str(out_path)
