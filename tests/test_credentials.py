"""Tests for llmgate.credentials."""

from llmgate import ChainedCredentialStore, EnvCredentialStore, StaticCredentialStore


class TestStaticStore:
    def test_lookup(self):
        store = StaticCredentialStore({"Moonshot": "sk-1"})
        assert store.get_credential("Moonshot") == "sk-1"
        assert store.get_credential("DeepSeek") is None

    def test_empty_key_counts_as_missing(self):
        assert StaticCredentialStore({"Moonshot": ""}).get_credential("Moonshot") is None

    def test_set_credential(self):
        store = StaticCredentialStore()
        store.set_credential("DeepSeek", "sk-2")
        assert store.get_credential("DeepSeek") == "sk-2"


class TestEnvStore:
    def test_default_variables(self):
        store = EnvCredentialStore(environ={"MOONSHOT_API_KEY": "sk-m", "DEEPSEEK_API_KEY": "sk-d"})
        assert store.get_credential("Moonshot") == "sk-m"
        assert store.get_credential("DeepSeek") == "sk-d"

    def test_fallback_variable_name(self):
        store = EnvCredentialStore(environ={"ACME_API_KEY": "sk-a"})
        assert store.get_credential("Acme") == "sk-a"

    def test_custom_mapping(self):
        store = EnvCredentialStore({"Moonshot": "KIMI_KEY"}, environ={"KIMI_KEY": "sk-k"})
        assert store.get_credential("Moonshot") == "sk-k"

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-live")
        assert EnvCredentialStore().get_credential("DeepSeek") == "sk-live"


class TestChainedStore:
    def test_first_hit_wins(self):
        store = ChainedCredentialStore(
            StaticCredentialStore({"Moonshot": "sk-first"}),
            StaticCredentialStore({"Moonshot": "sk-second", "DeepSeek": "sk-d"}),
        )
        assert store.get_credential("Moonshot") == "sk-first"
        assert store.get_credential("DeepSeek") == "sk-d"
        assert store.get_credential("Other") is None
