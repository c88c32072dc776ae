"""
Unit tests for the command-line interface and its configuration wiring.
"""
import io
import json
import logging

import pytest

import translate
from longdoc.config import TranslationConfig, DEFAULT_TARGET_LANGUAGE, SELECTION_STRATEGY, TOKENIZER
from longdoc.utils.unified_logger import UnifiedLogger


@pytest.fixture(autouse=True)
def restore_longdoc_logger():
    """The CLI installs its own handler on the 'longdoc' logger; undo it."""
    root = logging.getLogger("longdoc")
    handlers, propagate, level = list(root.handlers), root.propagate, root.level
    yield
    root.handlers = handlers
    root.propagate = propagate
    root.setLevel(level)


class FakeTranslator:
    instances = []

    def __init__(self):
        self.closed = False
        FakeTranslator.instances.append(self)

    async def translate(self, system_prompt, user_prompt, backend):
        if system_prompt.startswith("You are a senior prompt engineer"):
            return json.dumps({"variations": [{
                "name": "Generated",
                "systemPrompt": "Translate well.",
                "userPromptTemplate": "${targetLangName}: ${content}",
            }]})
        return "Bonjour"

    async def close(self):
        self.closed = True


class TestParser:
    """Tests for build_parser and default_output_path."""

    def test_defaults(self):
        args = translate.build_parser().parse_args(["-i", "doc.md"])
        assert args.input == "doc.md"
        assert args.output is None
        assert args.target_lang == DEFAULT_TARGET_LANGUAGE
        assert args.strategy == SELECTION_STRATEGY
        assert args.pool_stats is False
        assert args.generate_variants == 0
        assert args.select is None
        assert args.tokenizer == TOKENIZER

    def test_invalid_strategy(self):
        with pytest.raises(SystemExit):
            translate.build_parser().parse_args(["-i", "doc.md", "--strategy", "random"])

    def test_default_output_path(self, tmp_path):
        source = tmp_path / "book.md"
        expected = tmp_path / "book_translated_french.md"
        assert translate.default_output_path(str(source), "French") == str(expected)

        expected.write_text("taken", encoding="utf-8")
        assert translate.default_output_path(str(source), "French") == str(tmp_path / "book_translated_french (1).md")

    def test_config_from_cli_args(self):
        args = translate.build_parser().parse_args([
            "-i", "doc.md", "-tl", "German", "--concurrency", "8", "--max_retries", "1",
            "--strategy", "rotation", "--no-color", "--api_key", "sk-abcdef123456",
        ])
        config = TranslationConfig.from_cli_args(args)
        assert config.target_language == "German"
        assert config.max_concurrent_requests == 8
        assert config.max_retries == 1
        assert config.selection_strategy == "rotation"
        assert config.enable_colors is False
        assert config.to_dict()['api_key'] == "***3456"


class TestMain:
    """Tests for main()."""

    def _pool_args(self, tmp_path):
        return [
            "--prompt_pool", str(tmp_path / "pool.json"),
            "--health_config", str(tmp_path / "health.json"),
            "--no-color",
        ]

    def test_missing_input_file(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            translate.main(["-i", str(tmp_path / "missing.md")] + self._pool_args(tmp_path))
        assert exc_info.value.code == 2

    def test_input_required_for_translation(self, tmp_path):
        with pytest.raises(SystemExit):
            translate.main(self._pool_args(tmp_path))

    def test_pool_stats(self, tmp_path, capsys):
        assert translate.main(["--pool-stats"] + self._pool_args(tmp_path)) == 0
        assert "PROMPT POOL" in capsys.readouterr().out

    def test_translates_file_with_builtin_prompts(self, tmp_path, monkeypatch):
        monkeypatch.setattr(translate, "OpenAICompatibleTranslator", FakeTranslator)
        source = tmp_path / "doc.md"
        source.write_text("Hello world", encoding="utf-8")
        output = tmp_path / "out.md"

        code = translate.main(["-i", str(source), "-o", str(output), "-tl", "French"] + self._pool_args(tmp_path))

        assert code == 0
        assert output.read_text(encoding="utf-8") == "Bonjour"
        assert FakeTranslator.instances[-1].closed is True

    def test_exhausted_pool_exits_with_error(self, tmp_path, monkeypatch):
        monkeypatch.setattr(translate, "OpenAICompatibleTranslator", FakeTranslator)
        (tmp_path / "pool.json").write_text(json.dumps([{
            'id': 'p1', 'name': 'Unselected', 'systemPrompt': 's',
            'userPromptTemplate': '${content}', 'isActive': False,
        }]), encoding="utf-8")
        source = tmp_path / "doc.md"
        source.write_text("Hello world", encoding="utf-8")

        code = translate.main(["-i", str(source), "-o", str(tmp_path / "out.md")] + self._pool_args(tmp_path))

        assert code == 1
        assert not (tmp_path / "out.md").exists()

    def test_generate_variants(self, tmp_path, monkeypatch):
        monkeypatch.setattr(translate, "OpenAICompatibleTranslator", FakeTranslator)

        code = translate.main(["--generate_variants", "1"] + self._pool_args(tmp_path))

        assert code == 0
        stored = json.loads((tmp_path / "pool.json").read_text(encoding="utf-8"))
        assert [v['name'] for v in stored] == ["Generated"]
        assert stored[0]['userSelected'] is None
        assert stored[0]['aiGenerated'] is True

    def test_generated_variants_need_selection_before_translating(self, tmp_path, monkeypatch):
        monkeypatch.setattr(translate, "OpenAICompatibleTranslator", FakeTranslator)
        source = tmp_path / "doc.md"
        source.write_text("Hello world", encoding="utf-8")
        output = tmp_path / "out.md"
        translate_args = ["-i", str(source), "-o", str(output)] + self._pool_args(tmp_path)

        assert translate.main(["--generate_variants", "1"] + self._pool_args(tmp_path)) == 0
        assert translate.main(translate_args) == 1
        assert not output.exists()

        generated_id = json.loads((tmp_path / "pool.json").read_text(encoding="utf-8"))[0]['id']
        assert translate.main(["--select", generated_id] + self._pool_args(tmp_path)) == 0
        assert translate.main(translate_args) == 0

        assert output.read_text(encoding="utf-8") == "Bonjour"
        [stored] = json.loads((tmp_path / "pool.json").read_text(encoding="utf-8"))
        assert stored['userSelected'] is True
        assert stored['isActive'] is True
        assert stored['healthStatus']['successCount'] == 1

    def test_select_unknown_id(self, tmp_path):
        assert translate.main(["--select", "nope"] + self._pool_args(tmp_path)) == 1

    def test_tiktoken_tokenizer_sizes_chunks(self, tmp_path, monkeypatch):
        import tiktoken

        encoded = []

        class WordEncoding:
            def encode(self, text):
                encoded.append(text)
                return text.split()

        monkeypatch.setattr(tiktoken, "get_encoding", lambda name: WordEncoding())
        monkeypatch.setattr(translate, "OpenAICompatibleTranslator", FakeTranslator)
        source = tmp_path / "doc.md"
        source.write_text("Hello world", encoding="utf-8")

        code = translate.main(["-i", str(source), "-o", str(tmp_path / "out.md"), "--tokenizer", "tiktoken"]
                              + self._pool_args(tmp_path))

        assert code == 0
        assert "Hello world" in encoded

    def test_retry_policy_uses_configured_delays(self):
        args = translate.build_parser().parse_args([
            "-i", "doc.md", "--max_retries", "2", "--retry_base_delay_ms", "250", "--retry_max_delay_ms", "900",
        ])
        policy = translate.make_retry_policy(TranslationConfig.from_cli_args(args))
        assert policy.max_retries == 2
        assert policy.base_delay_ms == 250
        assert policy.max_delay_ms == 900


class TestUnifiedLogger:
    """Tests for the console logger and its pipeline callback."""

    def test_callback_levels(self):
        stream = io.StringIO()
        logger = UnifiedLogger(name="longdoc.cli_test", enable_colors=False, stream=stream)
        callback = logger.create_callback()

        callback("warning", "slow chunk")
        callback("info", "all good")
        callback("debug", "hidden")

        output = stream.getvalue()
        assert "[WARNING] slow chunk" in output
        assert "all good" in output
        assert "hidden" not in output

    def test_pool_stats_format(self):
        stream = io.StringIO()
        logger = UnifiedLogger(name="longdoc.cli_test", enable_colors=False, stream=stream)
        logger.info("Prompt pool", translate.LogType.POOL_STATS, {
            'total': 3, 'active': 2, 'healthy': 2, 'degraded': 0, 'deactivated': 1,
            'total_requests': 10, 'average_success_rate': 0.9,
        })
        output = stream.getvalue()
        assert "Variants: 3 (active 2" in output
        assert "success rate 90.0%" in output

    def test_log_types(self):
        assert {t.value for t in translate.LogType} == {
            "general", "pool_stats", "translation_start", "translation_end", "error_detail",
        }
