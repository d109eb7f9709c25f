# MIT License
# Copyright (c) 2025 Hashborn

"""
Upgrade Workflow Tests

Tests:
- Diff path never calls an upgrade entry point
- Fast path deploys, verifies the predicted address, then upgrades
- Address mismatch aborts before the proxy is touched
- Scratch layout is removed on every exit path
- Baseline/record bookkeeping after an upgrade
"""

import pytest
from unittest.mock import Mock

from slotguard.deploy.core.events import UPGRADE_BLOCKED, UPGRADE_COMPLETED
from slotguard.deploy.upgrade import UpgradeController, UpgradeOutcome, UpgradeState
from slotguard.protocol.crypto.addresses import contract_address, normalize_address
from slotguard.protocol.types.common import (
    AddressMismatch, CompilerError, DeploymentAction, MissingAdmin, NotAContract, ProxyKind,
    UpgradeNotApplied,
)
from slotguard.protocol.types.deployment import DeploymentRecord

from conftest import ADMIN, DEPLOYER, NETWORK, layout

PROXY = normalize_address("0x9fe46736679d2d9a65f0992f2272de9f3c7fa6e0")

V1 = layout((0, 0, "t_uint256", "count"), name="Counter")
V2_APPEND = layout((0, 0, "t_uint256", "count"), (1, 0, "t_address", "owner"), name="Counter")
V2_COLLIDE = layout((0, 0, "t_address", "owner"), (1, 0, "t_uint256", "count"), name="Counter")


@pytest.fixture
def with_baseline(store, compiler):
    store.write_baseline("Counter", NETWORK, V1)
    return compiler


def assert_no_upgrade_call(chain):
    chain.upgrade.assert_not_called()
    chain.upgrade_and_call.assert_not_called()


# ═══════════════════════════════════════════════════════════════════
# DIFF PATH
# ═══════════════════════════════════════════════════════════════════

@pytest.mark.parametrize("candidate, outcome", [
    (V1, UpgradeOutcome.PASSED),
    (V2_APPEND, UpgradeOutcome.PASSED),
    (V2_COLLIDE, UpgradeOutcome.COLLISION_BLOCKED),
])
def test_diff_path_never_upgrades(controller, chain, with_baseline, store, candidate, outcome):
    with_baseline.layouts["Counter"] = candidate

    attempt = controller.upgrade(PROXY, "Counter", NETWORK, DEPLOYER, override=False)

    assert attempt.state == UpgradeState.BLOCKED
    assert attempt.outcome == outcome
    assert attempt.baseline == V1
    assert attempt.candidate == candidate
    assert chain.deployed == []
    assert_no_upgrade_call(chain)
    assert store.read_scratch("Counter", NETWORK) is None
    # Baseline is untouched by an advisory run
    assert store.read_baseline("Counter", NETWORK) == V1


def test_diff_path_with_init_data_never_upgrades(controller, chain, with_baseline):
    with_baseline.layouts["Counter"] = V2_APPEND

    attempt = controller.upgrade_and_call(PROXY, "Counter", b"\x01\x02", NETWORK, DEPLOYER)

    assert attempt.blocked
    assert_no_upgrade_call(chain)


def test_diff_path_reports_collision(controller, with_baseline, bus):
    with_baseline.layouts["Counter"] = V2_COLLIDE
    blocked = []
    bus.subscribe(UPGRADE_BLOCKED, lambda attempt: blocked.append(attempt))

    attempt = controller.upgrade(PROXY, "Counter", NETWORK, DEPLOYER)

    assert attempt.collision_found
    assert any("slot 0" in line and "t_uint256->t_address" in line for line in attempt.diff_lines)
    assert blocked == [attempt]


def test_missing_baseline_compares_against_empty(controller, chain, compiler, store):
    compiler.layouts["Counter"] = V1

    attempt = controller.upgrade(PROXY, "Counter", NETWORK, DEPLOYER)

    assert attempt.outcome == UpgradeOutcome.PASSED
    assert len(attempt.baseline) == 0
    assert_no_upgrade_call(chain)


# ═══════════════════════════════════════════════════════════════════
# FAST PATH
# ═══════════════════════════════════════════════════════════════════

def test_fast_path_upgrades(controller, chain, with_baseline, store, deployments, bus):
    with_baseline.layouts["Counter"] = V2_APPEND
    completed = []
    bus.subscribe(UPGRADE_COMPLETED, lambda attempt: completed.append(attempt))

    attempt = controller.upgrade(PROXY, "Counter", NETWORK, DEPLOYER, override=True)

    implementation = contract_address(DEPLOYER, 0)
    assert attempt.state == UpgradeState.UPGRADED
    assert attempt.outcome == UpgradeOutcome.PASSED
    assert attempt.predicted_address == implementation
    assert attempt.implementation_address == implementation
    chain.upgrade.assert_called_once_with(PROXY, implementation, DEPLOYER, admin=None)
    chain.upgrade_and_call.assert_not_called()

    # New layout becomes the baseline, scratch is gone
    assert store.read_baseline("Counter", NETWORK) == V2_APPEND
    assert store.read_scratch("Counter", NETWORK) is None

    actions = [r.action for r in deployments.history("Counter", NETWORK)]
    assert actions == [DeploymentAction.DEPLOY, DeploymentAction.UPGRADE]
    assert completed == [attempt]


def test_fast_path_upgrade_and_call(controller, chain, with_baseline):
    with_baseline.layouts["Counter"] = V2_APPEND
    data = bytes.fromhex("c4d66de8")

    controller.upgrade_and_call(PROXY, "Counter", data, NETWORK, DEPLOYER, override=True)

    implementation = contract_address(DEPLOYER, 0)
    chain.upgrade_and_call.assert_called_once_with(PROXY, implementation, data, DEPLOYER, admin=None)
    chain.upgrade.assert_not_called()


def test_fast_path_override_collision(controller, chain, with_baseline):
    with_baseline.layouts["Counter"] = V2_COLLIDE

    attempt = controller.upgrade(PROXY, "Counter", NETWORK, DEPLOYER, override=True)

    assert attempt.upgraded
    assert attempt.outcome == UpgradeOutcome.COLLISION_OVERRIDDEN
    chain.upgrade.assert_called_once()


def test_fast_path_passes_admin(controller, chain, with_baseline):
    with_baseline.layouts["Counter"] = V1
    chain.code.add(ADMIN)

    controller.upgrade(PROXY, "Counter", NETWORK, DEPLOYER, override=True, admin=ADMIN.lower())

    assert chain.upgrade.call_args.kwargs["admin"] == ADMIN


def test_address_mismatch_aborts_before_upgrade(controller, chain, with_baseline, store):
    with_baseline.layouts["Counter"] = V2_APPEND
    chain.interleaved_txs = 1

    with pytest.raises(AddressMismatch) as exc:
        controller.upgrade(PROXY, "Counter", NETWORK, DEPLOYER, override=True)

    assert exc.value.predicted == contract_address(DEPLOYER, 0)
    assert exc.value.actual == contract_address(DEPLOYER, 1)
    assert_no_upgrade_call(chain)
    assert store.read_scratch("Counter", NETWORK) is None
    assert store.read_baseline("Counter", NETWORK) == V1


def test_mismatch_detected_with_stub_predictor(chain, orchestrator, compiler, store, bus):
    compiler.layouts["Counter"] = V1
    predictor = Mock()
    predictor.predict_next.return_value = "0x000000000000000000000000000000000000dEaD"
    controller = UpgradeController(chain, orchestrator, compiler, store, predictor=predictor, events=bus)

    with pytest.raises(AddressMismatch):
        controller.upgrade(PROXY, "Counter", NETWORK, DEPLOYER, override=True)

    assert_no_upgrade_call(chain)


# ═══════════════════════════════════════════════════════════════════
# CLEANUP
# ═══════════════════════════════════════════════════════════════════

@pytest.mark.parametrize("override", [False, True])
def test_scratch_removed_on_unexpected_failure(controller, chain, compiler, store, override):
    store.write_baseline("Counter", NETWORK, V1)
    compiler.storage_layout = Mock(side_effect=CompilerError("forge exploded"))

    with pytest.raises(CompilerError):
        controller.upgrade(PROXY, "Counter", NETWORK, DEPLOYER, override=override)

    assert store.read_scratch("Counter", NETWORK) is None
    assert_no_upgrade_call(chain)


def test_scratch_holds_baseline_during_attempt(controller, chain, with_baseline, store):
    seen = []

    def spy_layout(name):
        seen.append(store.read_scratch(name, NETWORK))
        return V2_APPEND

    with_baseline.storage_layout = spy_layout

    controller.upgrade(PROXY, "Counter", NETWORK, DEPLOYER)

    assert seen == [V1]
    assert store.read_scratch("Counter", NETWORK) is None


def test_check_touches_nothing(controller, chain, with_baseline, store):
    with_baseline.layouts["Counter"] = V2_COLLIDE

    report = controller.check("Counter", NETWORK)

    assert not report.compatible
    assert chain.deployed == []
    assert store.read_scratch("Counter", NETWORK) is None


# ═══════════════════════════════════════════════════════════════════
# PROXY HISTORY
# ═══════════════════════════════════════════════════════════════════

TOKEN_V1 = layout((0, 0, "t_uint256", "supply"), name="Token")
TOKEN_V2_COLLIDE = layout((0, 0, "t_address", "owner"), (1, 0, "t_uint256", "supply"), name="TokenV2")


def test_renamed_implementation_compares_against_live_contract(controller, orchestrator, chain,
                                                                 compiler, store):
    store.write_baseline("Token", NETWORK, TOKEN_V1)
    proxy = orchestrator.deploy_proxy("Token", b"", "uups", None, NETWORK, DEPLOYER)
    compiler.layouts["TokenV2"] = TOKEN_V2_COLLIDE

    attempt = controller.upgrade(proxy, "TokenV2", NETWORK, DEPLOYER)

    assert attempt.outcome == UpgradeOutcome.COLLISION_BLOCKED
    assert attempt.baseline == TOKEN_V1
    assert_no_upgrade_call(chain)


def test_renamed_implementation_baseline_follows_upgrade(controller, orchestrator, chain,
                                                         compiler, store):
    store.write_baseline("Token", NETWORK, TOKEN_V1)
    proxy = orchestrator.deploy_proxy("Token", b"", "uups", None, NETWORK, DEPLOYER)
    v2 = layout((0, 0, "t_uint256", "supply"), (1, 0, "t_bool", "paused"), name="TokenV2")
    compiler.layouts["TokenV2"] = v2
    controller.upgrade(proxy, "TokenV2", NETWORK, DEPLOYER, override=True)

    # Next run compares against TokenV2, now behind the proxy
    compiler.layouts["TokenV3"] = layout((0, 0, "t_uint256", "supply"), name="TokenV3")
    attempt = controller.upgrade(proxy, "TokenV3", NETWORK, DEPLOYER)

    assert attempt.baseline == v2
    assert attempt.outcome == UpgradeOutcome.COLLISION_BLOCKED


def test_transparent_upgrade_uses_recorded_proxy_admin(controller, orchestrator, chain,
                                                        compiler, store, deployments):
    store.write_baseline("Token", NETWORK, TOKEN_V1)
    proxy = orchestrator.deploy_proxy("Token", b"", "transparent", ADMIN, NETWORK, DEPLOYER)
    proxy_admin = contract_address(proxy, 1)
    compiler.layouts["Token"] = TOKEN_V1

    attempt = controller.upgrade(proxy, "Token", NETWORK, DEPLOYER, override=True)

    assert chain.upgrade.call_args.kwargs["admin"] == proxy_admin
    assert chain.implementation_of(proxy) == attempt.implementation_address
    record = deployments.latest("Token", NETWORK)
    assert record.action == DeploymentAction.UPGRADE
    assert record.proxy_kind == ProxyKind.TRANSPARENT
    assert record.admin_address == proxy_admin


def test_owner_eoa_as_admin_is_rejected(controller, orchestrator, chain, compiler, store, deployments):
    store.write_baseline("Token", NETWORK, TOKEN_V1)
    proxy = orchestrator.deploy_proxy("Token", b"", "transparent", ADMIN, NETWORK, DEPLOYER)
    compiler.layouts["Token"] = TOKEN_V1
    deployed_before = len(chain.deployed)

    with pytest.raises(NotAContract):
        controller.upgrade(proxy, "Token", NETWORK, DEPLOYER, override=True, admin=ADMIN)

    assert len(chain.deployed) == deployed_before
    assert_no_upgrade_call(chain)
    assert deployments.latest("Token", NETWORK).action == DeploymentAction.DEPLOY_PROXY


def test_transparent_proxy_without_known_admin(controller, chain, with_baseline, deployments):
    with_baseline.layouts["Counter"] = V1
    deployments.append(DeploymentRecord(
        contract_name="Counter", network_id=NETWORK,
        implementation_address=contract_address(ADMIN, 0), proxy_address=PROXY,
        proxy_kind=ProxyKind.TRANSPARENT, action=DeploymentAction.DEPLOY_PROXY,
    ))

    with pytest.raises(MissingAdmin):
        controller.upgrade(PROXY, "Counter", NETWORK, DEPLOYER, override=True)

    assert chain.deployed == []


def test_upgrade_without_effect_is_not_recorded(controller, chain, with_baseline, store, deployments):
    with_baseline.layouts["Counter"] = V2_APPEND
    chain.ignore_upgrades = True

    with pytest.raises(UpgradeNotApplied) as exc:
        controller.upgrade(PROXY, "Counter", NETWORK, DEPLOYER, override=True)

    assert exc.value.actual is None
    assert store.read_baseline("Counter", NETWORK) == V1
    assert store.read_scratch("Counter", NETWORK) is None
    assert [r.action for r in deployments.history("Counter", NETWORK)] == [DeploymentAction.DEPLOY]
