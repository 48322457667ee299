"""Collects collateral, passphrase, private key and Pastel ID for a masternode."""

from pastelup.constants import COLLATERAL
from pastelup.errors import CollateralError, MissingPassphraseError, UserAbortError
from pastelup.models import MasternodeParams
from pastelup.services.polling import COLLATERAL_POLICY, CancelToken, RetryPolicy


class MasternodeParameterResolver:
    """Fills in whatever ``MasternodeParams`` is missing, in a fixed order.

    Every step is skipped when its value is already present, so re-running after
    a partial failure never regenerates a key or identity. ``collateral_node``
    answers wallet queries (the cold node); ``key_node`` generates the masternode
    key and Pastel ID (the hot node in cold/hot mode, the same node otherwise).
    """

    def __init__(
        self,
        collateral_node,
        key_node,
        prompter,
        network: str,
        logger,
        token: CancelToken = None,
        collateral_policy: RetryPolicy = COLLATERAL_POLICY,
    ):
        self.collateral_node = collateral_node
        self.key_node = key_node
        self.prompter = prompter
        self.network = network
        self.logger = logger
        self.token = token or CancelToken()
        self.collateral_policy = collateral_policy

    def resolve(self, params: MasternodeParams) -> MasternodeParams:
        if params.is_fully_resolved():
            self.logger.info("Masternode parameters for %s are complete", params.name)
            return params
        self.resolve_collateral(params)
        self.resolve_passphrase(params)
        self.resolve_private_key(params)
        self.resolve_pastel_id(params)
        return params

    def resolve_collateral(self, params: MasternodeParams):
        if params.txid and params.index:
            return

        self.logger.warning("No collateral --txid and/or --ind provided")
        if not params.txid and self.prompter.confirm(
            "Search existing masternode collateral ready transaction in the wallet?"
        ):
            self._pick_existing_output(params)
            if params.txid and params.index:
                return

        if not params.txid:
            amount, coin = COLLATERAL[self.network]
            if not self.prompter.confirm(
                f"Do you want to generate new local address and send {amount}M {coin} to it from another wallet?"
            ):
                raise CollateralError("No collateral funds.")
            address = self.collateral_node.get_new_address()
            self.logger.warning("Your new address for collateral payment is %s", address)
            self.logger.warning("Use another wallet to send exactly %sM %s to that address.", amount, coin)
            params.txid = self.prompter.ask("Enter txid of the send and press Enter to continue when ready").strip()
            if not params.txid:
                raise CollateralError("No collateral transaction id entered.")

        self._wait_for_output(params)
        self.logger.info("masternode outputs = %s, %s", params.txid, params.index)

    def _pick_existing_output(self, params: MasternodeParams):
        outputs = self.collateral_node.masternode_outputs()
        if not outputs:
            self.logger.warning("No existing collateral ready transactions")
            return

        choices = list(outputs.items())
        for number, (txid, index) in enumerate(choices):
            self.logger.warning("%d - %s:%s", number, txid, index)
        answer = self.prompter.ask("Enter number to use, or N to exit")
        if not answer.isdigit() or int(answer) >= len(choices):
            raise CollateralError("User terminated - no collateral funds.")
        params.txid, params.index = choices[int(answer)]

    def _wait_for_output(self, params: MasternodeParams):
        def found() -> bool:
            index = self.collateral_node.masternode_outputs().get(params.txid)
            if index is None:
                self.logger.info("Waiting for transaction...")
                return False
            params.index = index
            return True

        while not self.collateral_policy.poll(found, self.token):
            if not self.prompter.confirm("Still no collateral transaction. Continue?"):
                raise UserAbortError("User terminated while waiting for collateral transaction.")

    def resolve_passphrase(self, params: MasternodeParams):
        if params.passphrase:
            return
        answer = self.prompter.ask(
            "No --passphrase provided. Please type new passphrase and press Enter. Or N to exit"
        )
        if not answer or answer.lower() == "n":
            raise MissingPassphraseError(
                "Required parameter if --create or --update specified: --passphrase <passphrase to pastelid private key>"
            )
        params.passphrase = answer

    def resolve_private_key(self, params: MasternodeParams):
        if params.private_key:
            return
        self.logger.info("Masternode private key is empty - will create new one")
        params.private_key = self.key_node.masternode_genkey()
        self.logger.info("Generated masternode private key")

    def resolve_pastel_id(self, params: MasternodeParams):
        if params.pastel_id:
            return
        if not params.passphrase:
            raise MissingPassphraseError("A passphrase is required to generate a Pastel ID.")
        self.logger.info("Masternode PastelID is empty - will create new one")
        params.pastel_id = self.key_node.pastelid_newkey(params.passphrase)
        self.logger.info("Masternode pastelid = %s", params.pastel_id)
