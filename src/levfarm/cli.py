from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from levfarm.plots import generate_all_figures
from levfarm.scenarios import SCENARIOS, run_scenarios, write_scenario_outputs
from levfarm.settings import resolve_out_dir, resolve_params


def _json_dumps(obj: object) -> str:
    return json.dumps(obj, indent=2, sort_keys=True) + "\n"


def cmd_simulate(args: argparse.Namespace) -> None:
    out_root = resolve_out_dir(args.out)
    params = resolve_params(args.params)

    outputs = run_scenarios(params=params, names=args.scenarios)
    paths = write_scenario_outputs(out_dir=out_root, outputs=outputs)
    for p in paths:
        print("[info] wrote", p)
    if args.print_summary:
        print(_json_dumps(outputs.summary), end="")


def cmd_plots(args: argparse.Namespace) -> None:
    out_root = resolve_out_dir(args.out)
    if not (out_root / "positions.csv").exists():
        raise FileNotFoundError(f"Missing {out_root / 'positions.csv'}. Run `levfarm simulate` first.")
    generate_all_figures(out_root=out_root)
    print("[info] wrote figures under", out_root / "figures")


def cmd_all(args: argparse.Namespace) -> None:
    cmd_simulate(args)
    cmd_plots(args)


def main(argv: list[str] | None = None) -> None:
    p = argparse.ArgumentParser(
        prog="levfarm", description="Run leveraged yield-farming scenarios on a simulated chain and plot them."
    )
    p.add_argument("--out", type=Path, default=None, help="Output directory (defaults to $LEVFARM_OUT or ./out).")
    p.add_argument(
        "--params", type=Path, default=None, help="JSON file overriding world parameters (or $LEVFARM_PARAMS)."
    )
    p.add_argument("-v", "--verbose", action="count", default=0, help="-v for info logs, -vv for debug.")

    sub = p.add_subparsers(dest="cmd", required=True)

    def _scenario_args(sp: argparse.ArgumentParser) -> None:
        sp.add_argument(
            "--scenarios",
            type=lambda s: [x.strip() for x in str(s).split(",") if x.strip()],
            default=None,
            help=f"Comma-separated subset of: {', '.join(SCENARIOS)}.",
        )
        sp.add_argument("--print-summary", action="store_true", help="Also print summary.json to stdout.")

    s = sub.add_parser("simulate", help="Run the scenarios and write positions.csv, events.csv, summary.json.")
    _scenario_args(s)
    s.set_defaults(func=cmd_simulate)

    pl = sub.add_parser("plots", help="Generate figures from an existing output directory.")
    pl.set_defaults(func=cmd_plots)

    a = sub.add_parser("all", help="simulate + plots.")
    _scenario_args(a)
    a.set_defaults(func=cmd_all)

    args = p.parse_args(argv)
    level = logging.WARNING - 10 * min(int(args.verbose), 2)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args.func(args)


if __name__ == "__main__":
    main()
