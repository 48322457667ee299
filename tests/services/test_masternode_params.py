import pytest

from pastelup.errors import CollateralError, MissingPassphraseError, OperationCancelled, UserAbortError
from pastelup.models import MasternodeParams
from pastelup.services.masternode_params import MasternodeParameterResolver
from pastelup.services.polling import CancelToken, RetryPolicy


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class InstantToken(CancelToken):
    def sleep(self, seconds):
        self.raise_if_cancelled()


class ScriptedPrompter:
    def __init__(self, confirms=(), answers=()):
        self.confirms = list(confirms)
        self.answers = list(answers)
        self.messages = []

    def confirm(self, message):
        self.messages.append(message)
        return self.confirms.pop(0)

    def ask(self, message):
        self.messages.append(message)
        return self.answers.pop(0)


class FakeNode:
    def __init__(self, outputs=None):
        self.outputs = list(outputs or [{}])
        self.calls = []

    def masternode_outputs(self):
        self.calls.append("outputs")
        return self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]

    def get_new_address(self):
        self.calls.append("getnewaddress")
        return "tPnewaddr"

    def masternode_genkey(self):
        self.calls.append("genkey")
        return "5Kgenerated"

    def pastelid_newkey(self, passphrase):
        self.calls.append(("newkey", passphrase))
        return "jXgenerated"


def build_resolver(collateral_node, key_node=None, prompter=None, attempts=2, token=None):
    return MasternodeParameterResolver(
        collateral_node=collateral_node,
        key_node=key_node or collateral_node,
        prompter=prompter or ScriptedPrompter(),
        network="testnet",
        logger=DummyLogger(),
        token=token or InstantToken(),
        collateral_policy=RetryPolicy(interval=0.0, max_attempts=attempts),
    )


def test_fully_resolved_params_cause_no_prompts_or_rpcs():
    node = FakeNode()
    prompter = ScriptedPrompter()
    params = MasternodeParams(
        name="mn1",
        txid="abcd1234",
        index="0",
        passphrase="hunter2",
        private_key="5Kexisting",
        pastel_id="jXexisting",
    )

    build_resolver(node, prompter=prompter).resolve(params)

    assert node.calls == []
    assert prompter.messages == []
    assert params.private_key == "5Kexisting"
    assert params.pastel_id == "jXexisting"


def test_keys_are_generated_on_key_node_only():
    cold = FakeNode()
    hot = FakeNode()
    params = MasternodeParams(name="mn1", txid="abcd1234", index="0", passphrase="hunter2")

    build_resolver(cold, key_node=hot).resolve(params)

    assert cold.calls == []
    assert hot.calls == ["genkey", ("newkey", "hunter2")]
    assert params.private_key == "5Kgenerated"
    assert params.pastel_id == "jXgenerated"


def test_existing_collateral_output_is_selected_by_number():
    node = FakeNode(outputs=[{"aaaa": "1", "abcd1234": "0"}])
    prompter = ScriptedPrompter(confirms=[True], answers=["1"])
    params = MasternodeParams(name="mn1")

    build_resolver(node, prompter=prompter).resolve_collateral(params)

    assert (params.txid, params.index) == ("abcd1234", "0")


def test_invalid_output_choice_aborts():
    node = FakeNode(outputs=[{"abcd1234": "0"}])
    prompter = ScriptedPrompter(confirms=[True], answers=["N"])

    with pytest.raises(CollateralError):
        build_resolver(node, prompter=prompter).resolve_collateral(MasternodeParams(name="mn1"))


def test_new_address_flow_waits_for_collateral_output():
    node = FakeNode(outputs=[{}, {}, {}, {"abcd1234": "0"}])
    prompter = ScriptedPrompter(confirms=[False, True, True], answers=["abcd1234"])
    params = MasternodeParams(name="mn1")

    build_resolver(node, prompter=prompter, attempts=2).resolve_collateral(params)

    assert params.index == "0"
    assert "getnewaddress" in node.calls
    assert "Still no collateral transaction. Continue?" in prompter.messages


def test_declining_to_keep_waiting_aborts():
    node = FakeNode(outputs=[{}])
    prompter = ScriptedPrompter(confirms=[False, True, False], answers=["abcd1234"])

    with pytest.raises(UserAbortError):
        build_resolver(node, prompter=prompter).resolve_collateral(MasternodeParams(name="mn1"))


def test_declining_new_address_raises_collateral_error():
    node = FakeNode()
    prompter = ScriptedPrompter(confirms=[False, False])

    with pytest.raises(CollateralError):
        build_resolver(node, prompter=prompter).resolve_collateral(MasternodeParams(name="mn1"))

    assert "getnewaddress" not in node.calls


@pytest.mark.parametrize("answer", ["", "n", "N"])
def test_missing_passphrase_answer_aborts(answer):
    prompter = ScriptedPrompter(answers=[answer])

    with pytest.raises(MissingPassphraseError):
        build_resolver(FakeNode(), prompter=prompter).resolve_passphrase(MasternodeParams(name="mn1"))


def test_collateral_wait_stops_when_cancelled():
    class CancelAfterSleeps(CancelToken):
        def __init__(self, sleeps):
            super().__init__()
            self.remaining = sleeps

        def sleep(self, seconds):
            self.remaining -= 1
            if self.remaining <= 0:
                self.cancel()
            super().sleep(0)

    node = FakeNode(outputs=[{}])
    prompter = ScriptedPrompter()
    params = MasternodeParams(name="mn1", txid="abcd1234")

    with pytest.raises(OperationCancelled):
        build_resolver(node, prompter=prompter, attempts=10, token=CancelAfterSleeps(3)).resolve_collateral(params)

    assert node.calls == ["outputs", "outputs", "outputs"]
    assert prompter.messages == []
    assert params.index == ""
