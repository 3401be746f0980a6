from __future__ import annotations

import argparse
import datetime as dt
import json
import logging
import random
import sys
import time
from pathlib import Path

from holdermap.adapters.analysis.http_analysis_adapter import HttpAnalysisAdapter
from holdermap.config import settings
from holdermap.core.errors import HoldermapError
from holdermap.core.models import FilterOptions, ReduceOptions
from holdermap.io.formatters import format_elapsed
from holdermap.io.output_writer import write_graph_html, write_graph_json, write_summary_md
from holdermap.io.schemas import frame_to_dict
from holdermap.services.analysis_service import AnalysisService
from holdermap.services.graph_session import GraphSession


LOGGER = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="holdermap", description="Token holder / transfer graph with force layout")
    src = p.add_argument_group("input (pick one)")
    src.add_argument("--token-id", help="Token to analyze through the backend (e.g. 0.0.123456)")
    src.add_argument("--input", help="Saved /visualize JSON payload")
    src.add_argument("--holders", help="Holders CSV (account,balance[,isTreasury])")
    src.add_argument("--transfers", help="Transfers CSV (timestamp,txId,sender,amount,receiver)")
    p.add_argument("--api-url", default=settings.API_URL, help="Analysis backend base URL")
    p.add_argument("--ongoing", action="store_true", help="List analyses currently running on the backend")
    p.add_argument("--watch", action="store_true", help="With --ongoing, keep polling until none are running")
    p.add_argument("--visualize-only", action="store_true",
                   help="With --token-id, fetch an existing analysis result without submitting a new job")
    p.add_argument("--months-back", type=int, default=settings.DEFAULT_MONTHS_BACK,
                   help=f"Transfer window in months (presets: {', '.join(map(str, settings.MONTHS_BACK_OPTIONS))})")
    p.add_argument("--all-time", action="store_true", help="Disable the transfer time window")
    p.add_argument("--hide", action="append", default=[], metavar="ID", help="Hide a wallet (repeatable)")
    p.add_argument("--hide-isolated", action="store_true", help="Hide wallets without a visible transfer")
    p.add_argument("--max-nodes", type=int, default=settings.MAX_NODES, help="Node budget before aggregation")
    p.add_argument("--min-balance-fraction", type=float, default=settings.MIN_BALANCE_FRACTION,
                   help="Share of supply below which wallets may be aggregated")
    p.add_argument("--seed", type=int, default=None, help="Random seed for initial layout positions")
    p.add_argument("--max-ticks", type=int, default=None, help="Cap on layout iterations")
    p.add_argument("--out", default="out", help="Output folder")
    p.add_argument("--html", action="store_true", help="Write a static HTML view alongside graph.json")
    p.add_argument("--log-level", default=settings.LOG_LEVEL, help="Logging level")
    return p


def _make_progress_reporter(token_id: str):
    start_time = time.time()
    is_tty = sys.stdout.isatty()

    def _ts() -> str:
        return dt.datetime.now().strftime("%H:%M:%S")

    def _print_line(message: str) -> None:
        if is_tty:
            sys.stdout.write("\r" + message.ljust(88))
            sys.stdout.flush()
        else:
            print(message)

    def _clear_line() -> None:
        if is_tty:
            sys.stdout.write("\r" + (" " * 88) + "\r")
            sys.stdout.flush()

    def progress(event: str, data: dict) -> None:
        if event == "start":
            print(f"[{_ts()}] Analyzing {token_id}")
            return
        if event == "progress":
            prog = data.get("progress")
            if prog is None:
                _print_line(f"Waiting for backend... ({data.get('polls', 0)} poll(s))")
                return
            _print_line(
                f"Holders {prog.holders_processed}/{prog.holders_total} • "
                f"batch {prog.batch_current}/{prog.batch_total} • "
                f"{prog.transactions_unique} unique tx • "
                f"{format_elapsed(prog.elapsed_sec)}"
            )
            return
        if event == "done":
            _clear_line()
            elapsed = time.time() - start_time
            print(f"[{_ts()}] Analysis finished in {elapsed:.1f}s")
            return
        if event == "error":
            _clear_line()
            print(f"[{_ts()}] Error: {data.get('message', 'Unknown error')}", file=sys.stderr)

    return progress


def _load_payload(args, progress, backend=None):
    if args.token_id:
        svc = AnalysisService(backend or HttpAnalysisAdapter(base_url=args.api_url))
        if args.visualize_only:
            return svc.visualize(args.token_id, on_progress=progress).payload
        return svc.analyze(args.token_id, on_progress=progress).payload
    if args.input:
        with open(args.input, encoding="utf-8") as f:
            return json.load(f)
    return {
        "holders": Path(args.holders).read_text(encoding="utf-8"),
        "transactions": Path(args.transfers).read_text(encoding="utf-8"),
    }


def _show_ongoing(svc: AnalysisService, watch: bool, sleep=time.sleep) -> int:
    while True:
        try:
            running = svc.ongoing()
        except HoldermapError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        if not running:
            print("No analyses in progress.")
            return 0
        for st in running:
            prog = st.progress
            detail = f"{prog.holders_processed}/{prog.holders_total} holders" if prog else st.status
            print(f"{st.token_id}: {detail}")
        if not watch:
            return 0
        sleep(settings.ONGOING_POLL_INTERVAL_SEC)


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="[%(levelname)s] %(name)s: %(message)s")

    if args.ongoing:
        svc = AnalysisService(HttpAnalysisAdapter(base_url=args.api_url))
        return _show_ongoing(svc, args.watch)

    if not (args.token_id or args.input or (args.holders and args.transfers)):
        print("Provide --token-id, --input, or both --holders and --transfers", file=sys.stderr)
        return 2

    progress = _make_progress_reporter(args.token_id or args.input or args.holders)
    try:
        payload = _load_payload(args, progress)
    except (HoldermapError, OSError, ValueError) as exc:
        progress("error", {"message": f"{exc.__class__.__name__}: {exc}"})
        return 1

    session = GraphSession(
        reduce_options=ReduceOptions(
            max_nodes=args.max_nodes,
            min_balance_fraction=args.min_balance_fraction,
        ),
        filter_options=FilterOptions(
            months_back=None if args.all_time else args.months_back,
            hidden_ids=frozenset(args.hide),
            hide_isolated=args.hide_isolated,
        ),
        rng=random.Random(args.seed),
    )
    try:
        graph = session.load_payload(payload)
    except (HoldermapError, ValueError) as exc:
        progress("error", {"message": f"{exc.__class__.__name__}: {exc}"})
        return 1

    ticks = session.settle(args.max_ticks)
    print(f"Layout: {len(session.visible.nodes)} nodes, {len(session.visible.links)} links, {ticks} ticks")
    if session.is_empty:
        print("Nothing to show for the current filter.")

    print("Writing outputs...")
    frame = frame_to_dict(
        graph,
        session.get_visible_nodes(),
        session.get_visible_links(),
        session.get_viewport_transform(),
    )
    graph_path = write_graph_json(frame, args.out)
    summary_path = write_summary_md(
        graph,
        session.visible,
        args.out,
        token_id=args.token_id,
        filter_options=session.filter_options,
    )
    html_path = write_graph_html(args.out) if args.html else None
    session.close()

    print(f"Wrote: {graph_path}")
    print(f"Wrote: {summary_path}")
    if html_path:
        print(f"Wrote: {html_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
