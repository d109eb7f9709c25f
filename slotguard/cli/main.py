# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from ..deploy.core.events import CONTRACT_LABELED, EventBus
from ..deploy.core.orchestrator import DeploymentOrchestrator
from ..deploy.core.predictor import AddressPredictor
from ..deploy.core.records import DeploymentLog
from ..deploy.env.forge import ForgeCompiler
from ..deploy.layout.store import LayoutSnapshotStore
from ..deploy.observability.metrics import render_metrics
from ..deploy.upgrade.controller import UpgradeController
from ..protocol.config.params import (
    DEPLOYMENTS_DB_NAME, ENV_SENDER, LAYOUTS_DIR_NAME, get_home_dir, get_network,
)
from ..protocol.types.common import SlotGuardError

logger = logging.getLogger(__name__)

# Exit status of an advisory run that found a collision
EXIT_COLLISION = 2


class Context:
    """Collaborators shared by the commands, built lazily from CLI args."""

    def __init__(self, args):
        self.args = args
        self.home = get_home_dir(args.home)
        os.makedirs(self.home, exist_ok=True)
        self.network = get_network(args.network, args.rpc)
        self.compiler = ForgeCompiler(project_dir=args.project)
        self.layout_store = LayoutSnapshotStore(os.path.join(self.home, LAYOUTS_DIR_NAME))
        self._deployments = None
        self._env = None
        self.events = EventBus()
        self.events.subscribe(CONTRACT_LABELED, print_label)

    @property
    def network_id(self) -> str:
        return self.network.network_id

    @property
    def deployments(self) -> DeploymentLog:
        if self._deployments is None:
            self._deployments = DeploymentLog(os.path.join(self.home, DEPLOYMENTS_DB_NAME))
        return self._deployments

    @property
    def env(self):
        if self._env is None:
            from ..deploy.env.web3_env import Web3Environment
            logger.debug(f"Connecting to {self.network} at {self.network.rpc_url}")
            self._env = Web3Environment.from_network(self.network)
        return self._env

    def sender(self) -> str:
        sender = self.args.sender or os.environ.get(ENV_SENDER)
        if not sender:
            raise SlotGuardError(f"Sender address required (--sender or {ENV_SENDER})")
        return sender

    def orchestrator(self) -> DeploymentOrchestrator:
        return DeploymentOrchestrator(
            self.env, self.compiler, self.deployments,
            layout_store=self.layout_store, layouts=self.compiler, events=self.events,
        )

    def controller(self) -> UpgradeController:
        return UpgradeController(self.env, self.orchestrator(), self.compiler, self.layout_store,
                                 events=self.events)


def parse_hex(value: Optional[str]) -> bytes:
    if not value:
        return b""
    value = value[2:] if value.startswith("0x") else value
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise SlotGuardError(f"Invalid hex data: {value}")

def parse_arg(value: str):
    """Best-effort conversion of a command-line constructor argument."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    return value

def print_label(address: str, name: str):
    print(f"  {name}: {address}")

def print_diff(lines: List[str]):
    if not lines:
        print("  (no differences)")
    for line in lines:
        print(f"  {line}")

# --- Layout Commands ---
def cmd_layout_snapshot(ctx: Context):
    name = ctx.args.contract
    snapshot = ctx.compiler.storage_layout(name)
    path = ctx.layout_store.write_baseline(name, ctx.network_id, snapshot)
    print(f"Baseline for {name} on {ctx.network_id} saved to {path} ({len(snapshot)} entries)")
    return 0

def cmd_layout_show(ctx: Context):
    name = ctx.args.contract
    snapshot = ctx.layout_store.read_baseline(name, ctx.network_id)
    if snapshot is None:
        print(f"No baseline recorded for {name} on {ctx.network_id}.")
        return 1

    print(f"{'Slot':<6} {'Offset':<7} {'Type':<40} {'Label'}")
    print("-" * 70)
    for e in snapshot.entries:
        print(f"{e.slot:<6} {e.offset:<7} {e.type:<40} {e.label}")
    return 0

def cmd_layout_list(ctx: Context):
    keys = ctx.layout_store.list_baselines(None if ctx.args.all else ctx.network_id)
    if not keys:
        print("No baselines recorded.")
        return 0
    for network_id, name in keys:
        print(f"{network_id:<12} {name}")
    return 0

def cmd_layout_diff(ctx: Context):
    report = ctx.controller().check(ctx.args.contract, ctx.network_id)
    status = "compatible" if report.compatible else f"INCOMPATIBLE ({report.collisions} collision(s))"
    print(f"{ctx.args.contract} on {ctx.network_id}: {status}")
    print_diff(report.diff_lines)
    return 0 if report.compatible else EXIT_COLLISION

# --- Deploy Commands ---
def cmd_deploy(ctx: Context):
    address = ctx.orchestrator().deploy_raw(
        ctx.args.contract, [parse_arg(a) for a in ctx.args.args], ctx.network_id, ctx.sender()
    )
    print(f"{ctx.args.contract} deployed at {address}")
    return 0

def cmd_deploy_proxy(ctx: Context):
    proxy = ctx.orchestrator().deploy_proxy(
        ctx.args.contract,
        parse_hex(ctx.args.init_data),
        ctx.args.kind,
        ctx.args.admin,
        ctx.network_id,
        ctx.sender(),
    )
    print(f"{ctx.args.contract} deployed behind {ctx.args.kind} proxy at {proxy}")
    return 0

# --- Upgrade Commands ---
def report_attempt(ctx: Context, attempt) -> int:
    if ctx.args.json:
        print(json.dumps(attempt.to_dict(), indent=2))
    else:
        print(f"Outcome: {attempt.outcome.value} ({attempt.state.value})")
        print_diff(attempt.diff_lines)
        if attempt.upgraded:
            print(f"Proxy {attempt.proxy_address} now points to {attempt.implementation_address}")
        else:
            print("No upgrade transaction sent. Re-run with --override to upgrade.")

    if attempt.blocked and attempt.collision_found:
        return EXIT_COLLISION
    return 0

def cmd_upgrade(ctx: Context):
    attempt = ctx.controller().upgrade(
        ctx.args.proxy, ctx.args.contract, ctx.network_id, ctx.sender(),
        override=ctx.args.override, admin=ctx.args.admin,
    )
    return report_attempt(ctx, attempt)

def cmd_upgrade_and_call(ctx: Context):
    attempt = ctx.controller().upgrade_and_call(
        ctx.args.proxy, ctx.args.contract, parse_hex(ctx.args.data), ctx.network_id, ctx.sender(),
        override=ctx.args.override, admin=ctx.args.admin,
    )
    return report_attempt(ctx, attempt)

# --- Query Commands ---
def cmd_predict_address(ctx: Context):
    predictor = AddressPredictor()
    nonce = ctx.args.nonce
    if nonce is None:
        nonce = ctx.env.get_transaction_count(ctx.args.sender_address)
    print(predictor.predict(ctx.args.sender_address, nonce))
    return 0

def cmd_history(ctx: Context):
    network_id = None if ctx.args.all else ctx.network_id
    records = ctx.deployments.history(ctx.args.contract, network_id)
    if not records:
        print("No deployments recorded.")
        return 0

    print(f"{'Time':<28} {'Action':<13} {'Contract':<20} {'Implementation':<44} {'Proxy'}")
    print("-" * 150)
    for r in records:
        print(f"{r.timestamp:<28} {r.action.value:<13} {r.contract_name:<20} "
              f"{r.implementation_address:<44} {r.proxy_address or '-'}")
    return 0

def cmd_metrics(ctx: Context):
    sys.stdout.write(render_metrics().decode())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="slotguard", description="Layout-gated proxy deployments and upgrades")
    parser.add_argument("--network", help="Network name (default: $SLOTGUARD_NETWORK or anvil)")
    parser.add_argument("--rpc", help="RPC URL override (default: $SLOTGUARD_RPC_URL)")
    parser.add_argument("--sender", help="Deployer address (default: $SLOTGUARD_SENDER)")
    parser.add_argument("--project", default=".", help="Foundry project directory")
    parser.add_argument("--home", help="State directory for layouts and deployment log (default: ./.slotguard)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # layout
    p_layout = subparsers.add_parser("layout", help="Manage storage layout baselines")
    sp_layout = p_layout.add_subparsers(dest="subcommand", required=True)

    pl_snap = sp_layout.add_parser("snapshot", help="Record compiled layout as baseline")
    pl_snap.add_argument("contract", help="Contract name")
    pl_snap.set_defaults(func=cmd_layout_snapshot)

    pl_show = sp_layout.add_parser("show", help="Print the recorded baseline")
    pl_show.add_argument("contract", help="Contract name")
    pl_show.set_defaults(func=cmd_layout_show)

    pl_list = sp_layout.add_parser("list", help="List recorded baselines")
    pl_list.add_argument("--all", action="store_true", help="All networks")
    pl_list.set_defaults(func=cmd_layout_list)

    pl_diff = sp_layout.add_parser("diff", help="Compare compiled layout with the baseline")
    pl_diff.add_argument("contract", help="Contract name")
    pl_diff.set_defaults(func=cmd_layout_diff)

    # deploy
    p_deploy = subparsers.add_parser("deploy", help="Deploy a contract without proxy")
    p_deploy.add_argument("contract", help="Contract name")
    p_deploy.add_argument("args", nargs="*", help="Constructor arguments")
    p_deploy.set_defaults(func=cmd_deploy)

    p_proxy = subparsers.add_parser("deploy-proxy", help="Deploy an implementation behind a proxy")
    p_proxy.add_argument("contract", help="Implementation contract name")
    p_proxy.add_argument("--kind", default="uups", help="Proxy kind: uups or transparent")
    p_proxy.add_argument("--admin", help="Proxy admin owner (transparent proxies)")
    p_proxy.add_argument("--init-data", default="", help="Hex encoded initializer call")
    p_proxy.set_defaults(func=cmd_deploy_proxy)

    # upgrade
    p_up = subparsers.add_parser("upgrade", help="Upgrade a proxy (advisory unless --override)")
    p_up.add_argument("proxy", help="Proxy address")
    p_up.add_argument("contract", help="New implementation contract name")
    p_up.add_argument("--override", action="store_true", help="Upgrade even if the layout collides")
    p_up.add_argument("--admin", help="ProxyAdmin address (transparent proxies)")
    p_up.add_argument("--json", action="store_true", help="JSON output")
    p_up.set_defaults(func=cmd_upgrade)

    p_upc = subparsers.add_parser("upgrade-and-call", help="Upgrade a proxy and call the new implementation")
    p_upc.add_argument("proxy", help="Proxy address")
    p_upc.add_argument("contract", help="New implementation contract name")
    p_upc.add_argument("data", help="Hex encoded calldata")
    p_upc.add_argument("--override", action="store_true", help="Upgrade even if the layout collides")
    p_upc.add_argument("--admin", help="ProxyAdmin address (transparent proxies)")
    p_upc.add_argument("--json", action="store_true", help="JSON output")
    p_upc.set_defaults(func=cmd_upgrade_and_call)

    # queries
    p_pred = subparsers.add_parser("predict-address", help="Predict the next CREATE address")
    p_pred.add_argument("sender_address", help="Deployer address")
    p_pred.add_argument("nonce", type=int, nargs="?", help="Nonce (default: read from node)")
    p_pred.set_defaults(func=cmd_predict_address)

    p_hist = subparsers.add_parser("history", help="Show recorded deployments")
    p_hist.add_argument("--contract", help="Filter by contract name")
    p_hist.add_argument("--all", action="store_true", help="All networks")
    p_hist.set_defaults(func=cmd_history)

    p_metrics = subparsers.add_parser("metrics", help="Print metrics in Prometheus format")
    p_metrics.set_defaults(func=cmd_metrics)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    try:
        ctx = Context(args)
        return args.func(ctx)
    except (SlotGuardError, ValueError) as e:
        print(f"Error: {e}")
        return 1

if __name__ == "__main__":
    sys.exit(main())
