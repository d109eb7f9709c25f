import pytest

from slotguard.deploy.core.predictor import AddressPredictor
from slotguard.protocol.crypto.addresses import (
    contract_address, is_valid_address, normalize_address, same_address,
)

from conftest import DEPLOYER, FakeChain


@pytest.mark.parametrize("sender, nonce, expected", [
    # First contracts deployed by the default anvil/hardhat account
    (DEPLOYER, 0, "0x5FbDB2315678afecb367f032d93F642f64180aa3"),
    (DEPLOYER, 1, "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"),
    ("0x6ac7ea33f8831ea9dcc53393aaa88b25a785dbf0", 0, "0xcd234a471b72ba2f1ccf0a70fcaba648a5eecd8d"),
    ("0x6ac7ea33f8831ea9dcc53393aaa88b25a785dbf0", 1, "0x343c43a37d37dff08ae8c4a11544c718abb4fcf8"),
])
def test_contract_address_vectors(sender, nonce, expected):
    assert contract_address(sender, nonce).lower() == expected.lower()


def test_contract_address_is_checksummed():
    assert contract_address(DEPLOYER, 0) == "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def test_contract_address_rejects_negative_nonce():
    with pytest.raises(ValueError):
        contract_address(DEPLOYER, -1)


def test_normalize_and_compare():
    assert normalize_address(DEPLOYER.lower()) == DEPLOYER
    assert same_address(DEPLOYER.lower(), DEPLOYER)
    assert not same_address(DEPLOYER, "0x0000000000000000000000000000000000000000")
    assert not same_address(DEPLOYER, "not-an-address")
    assert is_valid_address(DEPLOYER)
    assert not is_valid_address(None)
    assert not is_valid_address("0x1234")

    with pytest.raises(ValueError):
        normalize_address("0x1234")


def test_predictor_uses_current_nonce():
    chain = FakeChain()
    chain.nonces[DEPLOYER] = 7
    predictor = AddressPredictor()

    assert predictor.predict_next(chain, DEPLOYER) == contract_address(DEPLOYER, 7)
    assert predictor.predict(DEPLOYER, 7) == predictor.predict(DEPLOYER, 7)
