from cedar_schema.config import PARSER_CONFIG_ENV, ParserConfig


def test_defaults():
    config = ParserConfig()

    assert config.max_nesting_depth == 32
    assert config.allow_dotted_namespaces is True


def test_from_string_parses_types_and_ignores_unknown_keys():
    config = ParserConfig.from_string(
        "max_nesting_depth=4, allow_dotted_namespaces=FALSE,unknown=1,garbage"
    )

    assert config.max_nesting_depth == 4
    assert config.allow_dotted_namespaces is False


def test_from_env_reads_variable():
    config = ParserConfig.from_env({PARSER_CONFIG_ENV: "max_nesting_depth=7"})
    assert config.max_nesting_depth == 7

    assert ParserConfig.from_env({}) == ParserConfig()


def test_from_env_defaults_to_process_environment(monkeypatch):
    monkeypatch.setenv(PARSER_CONFIG_ENV, "allow_dotted_namespaces=false")

    assert ParserConfig.from_env().allow_dotted_namespaces is False


def test_cache_key_distinguishes_configs():
    assert ParserConfig().cache_key() == ParserConfig().cache_key()
    assert ParserConfig().cache_key() != ParserConfig(max_nesting_depth=3).cache_key()
