import logging

from ...protocol.crypto.addresses import contract_address
from ..env.interfaces import ExecutionEnvironment

logger = logging.getLogger(__name__)


class AddressPredictor:
    """Predicts CREATE addresses. Used as a sanity check, never to deploy."""

    def predict(self, sender: str, nonce: int) -> str:
        """
        Address the next contract created by `sender` at `nonce` will occupy.

        Args:
            sender: Deployer address
            nonce: Sender's next transaction nonce

        Returns:
            Checksummed contract address
        """
        return contract_address(sender, nonce)

    def predict_next(self, env: ExecutionEnvironment, sender: str) -> str:
        nonce = env.get_transaction_count(sender)
        predicted = self.predict(sender, nonce)
        logger.debug(f"Next deployment from {sender} (nonce {nonce}) expected at {predicted}")
        return predicted
