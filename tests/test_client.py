"""
Tests for the completion API client.

This module tests CompletionClient: request construction, status-to-kind
mapping, the retry policy (backoff, Retry-After, validation escalation),
response parsing and the combined detect-and-translate call.  Uses respx
for mocking HTTP requests; backoff sleeps are recorded by an AsyncMock.
"""

import json
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import httpx
import pytest
import respx
from httpx import Response

from chat_translator.client import (
    DEFAULT_ENDPOINT_URL,
    MAX_RETRIES,
    VALIDATION_RETRY_DELAY,
    CompletionClient,
)
from chat_translator.errors import ErrorKind, TranslationError, UnsupportedLanguageError
from chat_translator.languages import LanguageCode

API_KEY = "sk-test"

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
async def client() -> AsyncGenerator[CompletionClient, None]:
    """Create a client with instant sleeps and zero jitter."""
    async with CompletionClient(
        API_KEY, sleep=AsyncMock(), jitter=lambda low, high: 0.0
    ) as client:
        yield client


def _reply(content: str) -> Response:
    message = {"role": "assistant", "content": content}
    return Response(200, json={"choices": [{"message": message}]})


def _sleeps(client: CompletionClient) -> list[float]:
    return [c.args[0] for c in client.sleep.await_args_list]


def _body(route: respx.Route, index: int) -> dict:
    return json.loads(route.calls[index].request.content)


def _prompt(route: respx.Route, index: int) -> str:
    return _body(route, index)["messages"][-1]["content"]


# =============================================================================
# CONTEXT MANAGER TESTS
# =============================================================================


class TestClientLifecycle:
    """Tests for client initialization and context management."""

    def test_client_requires_context_manager(self):
        """Accessing http_client outside the context raises RuntimeError."""
        client = CompletionClient(API_KEY)

        with pytest.raises(RuntimeError, match="async context manager"):
            _ = client.http_client

    async def test_client_context_manager(self):
        """The HTTP client exists inside the context and is closed after."""
        client = CompletionClient(API_KEY)
        async with client:
            assert client.http_client is not None
        assert client._http_client is None

    def test_repr_omits_callables_and_pool(self):
        client = CompletionClient(API_KEY)
        assert "sleep" not in repr(client)
        assert "_http_client" not in repr(client)


# =============================================================================
# TRANSLATE TESTS
# =============================================================================


class TestTranslate:
    """Tests for the single-direction translate call."""

    @respx.mock
    async def test_successful_translation(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply("  你好  "))

        result = await client.translate("こんにちは", "ja", "zh")

        assert result == "你好"
        assert route.call_count == 1
        request = route.calls[0].request
        assert request.headers["Authorization"] == f"Bearer {API_KEY}"
        body = _body(route, 0)
        assert body["model"] == client.model
        assert body["messages"][0]["role"] == "user"
        assert "from Japanese to Chinese" in body["messages"][0]["content"]
        assert "This is CRITICAL" not in body["messages"][0]["content"]

    @respx.mock
    async def test_dictionary_hint_is_sent(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply("ストリノヴァは強い"))
        hint = "Use these translations for specific terms:\n- 卡拉彼丘/卡拉 → ストリノヴァ"

        await client.translate("卡拉彼丘很强", "zh", "ja", hint)

        assert hint in _prompt(route, 0)

    @respx.mock
    async def test_markdown_output_format(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply("**Hello**"))

        await client.translate("**你好**", "zh", "en", output_format="markdown")

        assert "Markdown" in _prompt(route, 0)

    @respx.mock
    async def test_english_target_is_not_script_checked(self, client: CompletionClient):
        respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply("Hello"))
        assert await client.translate("你好", "zh", "en") == "Hello"


# =============================================================================
# ERROR MAPPING TESTS
# =============================================================================


class TestErrorMapping:
    """Non-retryable statuses fail on the first call."""

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (401, ErrorKind.AUTH),
            (403, ErrorKind.AUTH),
            (400, ErrorKind.INVALID_INPUT),
            (404, ErrorKind.API_ERROR),
        ],
    )
    @respx.mock
    async def test_status_is_not_retried(self, client: CompletionClient, status, kind):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(
            return_value=Response(status, text="nope")
        )

        with pytest.raises(TranslationError) as exc_info:
            await client.translate("こんにちは", "ja", "zh")

        assert exc_info.value.kind is kind
        assert exc_info.value.status_code == status
        assert exc_info.value.detail == "nope"
        assert route.call_count == 1
        assert _sleeps(client) == []

    @pytest.mark.parametrize(
        ("status", "kind"), [(401, ErrorKind.AUTH), (400, ErrorKind.INVALID_INPUT)]
    )
    @pytest.mark.parametrize("operation", ["detect_language", "translate_with_auto_detect"])
    @respx.mock
    async def test_other_operations_do_not_retry_status(
        self, client: CompletionClient, operation, status, kind
    ):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=Response(status))

        with pytest.raises(TranslationError) as exc_info:
            await getattr(client, operation)("こんにちは")

        assert exc_info.value.kind is kind
        assert route.call_count == 1
        assert _sleeps(client) == []

    @respx.mock
    async def test_error_detail_is_truncated(self, client: CompletionClient):
        respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=Response(401, text="x" * 2000))

        with pytest.raises(TranslationError) as exc_info:
            await client.translate("こんにちは", "ja", "zh")

        assert len(exc_info.value.detail) == 500

    @respx.mock
    async def test_non_json_body(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(
            return_value=Response(200, text="<html>oops</html>")
        )

        with pytest.raises(TranslationError, match="Invalid API response format") as exc_info:
            await client.translate("こんにちは", "ja", "zh")

        assert exc_info.value.kind is ErrorKind.API_ERROR
        assert route.call_count == 1

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"choices": []},
            {"choices": [{"message": {}}]},
            {"choices": [{"message": {"content": "   "}}]},
            {"choices": [{"message": {"content": None}}]},
        ],
    )
    @respx.mock
    async def test_malformed_payload(self, client: CompletionClient, payload):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=Response(200, json=payload))

        with pytest.raises(TranslationError) as exc_info:
            await client.translate("こんにちは", "ja", "zh")

        assert exc_info.value.kind is ErrorKind.API_ERROR
        assert route.call_count == 1


# =============================================================================
# RETRY POLICY TESTS
# =============================================================================


class TestRetryPolicy:
    """Tests for backoff, Retry-After handling and the retry budget."""

    @respx.mock
    async def test_server_errors_then_success(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(
            side_effect=[Response(500), Response(502), Response(503), _reply("你好")]
        )

        assert await client.translate("こんにちは", "ja", "zh") == "你好"
        assert route.call_count == 4

    @respx.mock
    async def test_budget_exhausted_raises_last_error(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=Response(500))

        with pytest.raises(TranslationError) as exc_info:
            await client.translate("こんにちは", "ja", "zh")

        assert exc_info.value.kind is ErrorKind.NETWORK
        assert exc_info.value.status_code == 500
        assert route.call_count == MAX_RETRIES + 1

    @respx.mock
    async def test_exponential_backoff(self, client: CompletionClient):
        respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=Response(500))

        with pytest.raises(TranslationError):
            await client.translate("こんにちは", "ja", "zh")

        assert _sleeps(client) == [1.0, 2.0, 4.0]

    @respx.mock
    async def test_backoff_includes_jitter(self):
        respx.post(DEFAULT_ENDPOINT_URL).mock(side_effect=[Response(503), _reply("你好")])
        sleep = AsyncMock()

        async with CompletionClient(API_KEY, sleep=sleep, jitter=lambda low, high: high) as c:
            await c.translate("こんにちは", "ja", "zh")

        sleep.assert_awaited_once_with(2.0)

    @respx.mock
    async def test_retry_after_is_honoured(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(
            side_effect=[Response(429, headers={"Retry-After": "7"}), _reply("你好")]
        )

        assert await client.translate("こんにちは", "ja", "zh") == "你好"
        assert route.call_count == 2
        assert _sleeps(client) == [7.0]

    @pytest.mark.parametrize("header", ["Wed, 21 Oct 2026 07:28:00 GMT", "soon", "0", "-3"])
    @respx.mock
    async def test_unusable_retry_after_falls_back_to_backoff(
        self, client: CompletionClient, header
    ):
        respx.post(DEFAULT_ENDPOINT_URL).mock(
            side_effect=[Response(429, headers={"Retry-After": header}), _reply("你好")]
        )

        await client.translate("こんにちは", "ja", "zh")

        assert _sleeps(client) == [1.0]

    @respx.mock
    async def test_rate_limit_error_carries_retry_after(self, client: CompletionClient):
        respx.post(DEFAULT_ENDPOINT_URL).mock(
            return_value=Response(429, headers={"Retry-After": "2"})
        )

        with pytest.raises(TranslationError) as exc_info:
            await client.translate("こんにちは", "ja", "zh")

        assert exc_info.value.kind is ErrorKind.RATE_LIMIT
        assert exc_info.value.retry_after == 2
        assert _sleeps(client) == [2.0, 2.0, 2.0]

    @respx.mock
    async def test_transport_error_is_network_and_retried(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(
            side_effect=[httpx.ConnectError("connection refused"), _reply("你好")]
        )

        assert await client.translate("こんにちは", "ja", "zh") == "你好"
        assert route.call_count == 2

    @respx.mock
    async def test_persistent_transport_error(self, client: CompletionClient):
        respx.post(DEFAULT_ENDPOINT_URL).mock(side_effect=httpx.ConnectError)

        with pytest.raises(TranslationError, match="Network error during translation") as exc:
            await client.translate("こんにちは", "ja", "zh")

        assert exc.value.kind is ErrorKind.NETWORK
        assert exc.value.status_code == 0


# =============================================================================
# OUTPUT VALIDATION TESTS
# =============================================================================


class TestOutputValidation:
    """Echoed or wrong-script output is retried with a stricter prompt."""

    @respx.mock
    async def test_echo_triggers_escalated_prompt(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(
            side_effect=[_reply("こんにちは"), _reply("你好")]
        )

        assert await client.translate("こんにちは", "ja", "zh") == "你好"

        assert "This is CRITICAL" not in _prompt(route, 0)
        assert "This is CRITICAL" in _prompt(route, 1)
        assert _sleeps(client) == [VALIDATION_RETRY_DELAY]

    @respx.mock
    async def test_escalation_is_sticky(self, client: CompletionClient):
        """After a validation failure, later retries keep the stricter prompt."""
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(
            side_effect=[_reply("こんにちは"), Response(503), _reply("你好")]
        )

        await client.translate("こんにちは", "ja", "zh")

        assert "This is CRITICAL" in _prompt(route, 1)
        assert "This is CRITICAL" in _prompt(route, 2)
        assert _sleeps(client) == [VALIDATION_RETRY_DELAY, 2.0]

    @respx.mock
    async def test_wrong_script_for_japanese_exhausts_budget(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply("Hello there"))

        with pytest.raises(TranslationError, match="Japanese characters") as exc_info:
            await client.translate("你好", "zh", "ja")

        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert route.call_count == MAX_RETRIES + 1
        assert _sleeps(client) == [VALIDATION_RETRY_DELAY] * MAX_RETRIES

    @respx.mock
    async def test_wrong_script_for_chinese(self, client: CompletionClient):
        respx.post(DEFAULT_ENDPOINT_URL).mock(side_effect=[_reply("hello"), _reply("你好。")])
        assert await client.translate("こんにちは", "ja", "zh") == "你好。"

    @respx.mock
    async def test_validation_failure_is_logged(self, client: CompletionClient, caplog):
        respx.post(DEFAULT_ENDPOINT_URL).mock(side_effect=[_reply("こんにちは"), _reply("你好")])

        with caplog.at_level("WARNING", logger="chat_translator.client"):
            await client.translate("こんにちは", "ja", "zh")

        assert "identical to input" in caplog.text


# =============================================================================
# DETECTION TESTS
# =============================================================================


class TestDetectLanguage:
    """Tests for the detection-only call."""

    @pytest.mark.parametrize(
        ("reply", "expected"),
        [("ja", "ja"), ("Chinese", "zh"), ("`zh`", "zh"), ("ko", "unsupported")],
    )
    @respx.mock
    async def test_reply_is_normalised(self, client: CompletionClient, reply, expected):
        respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply(reply))
        assert await client.detect_language("...") == expected

    @respx.mock
    async def test_payload_is_deterministic_and_short(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply("ja"))

        await client.detect_language("こんにちは")

        body = _body(route, 0)
        assert body["temperature"] == 0
        assert body["max_tokens"] == 10
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert "こんにちは" in body["messages"][1]["content"]

    @respx.mock
    async def test_detection_is_retried(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(side_effect=[Response(500), _reply("zh")])

        assert await client.detect_language("你好") == "zh"
        assert route.call_count == 2


class TestTranslateWithAutoDetect:
    """Tests for the combined detect-and-translate call."""

    @respx.mock
    async def test_direction_tag(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply("zh->ja\nこんにちは"))

        result = await client.translate_with_auto_detect("你好")

        assert result.source_lang is LanguageCode.ZH
        assert result.target_lang is LanguageCode.JA
        assert result.translated_text == "こんにちは"
        body = _body(route, 0)
        assert body["temperature"] == 0
        assert body["messages"][0]["role"] == "system"
        assert body["messages"][1]["content"].endswith("Text to translate:\n你好")

    @respx.mock
    async def test_hint_is_sent(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply("ja->zh\n你好"))

        await client.translate_with_auto_detect("こんにちは", "HINT BLOCK")

        assert _body(route, 0)["messages"][1]["content"].startswith("HINT BLOCK")

    @respx.mock
    async def test_filler_before_tag_is_stripped(self, client: CompletionClient):
        respx.post(DEFAULT_ENDPOINT_URL).mock(
            return_value=_reply("Sure! Here's the translation:\nja->zh\n你好")
        )

        result = await client.translate_with_auto_detect("こんにちは")

        assert result.translated_text == "你好"
        assert result.source_lang is LanguageCode.JA

    @respx.mock
    async def test_unsupported_is_not_retried(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply("UNSUPPORTED"))

        with pytest.raises(UnsupportedLanguageError) as exc_info:
            await client.translate_with_auto_detect("안녕하세요")

        assert exc_info.value.kind is ErrorKind.UNSUPPORTED_LANGUAGE
        assert route.call_count == 1

    @respx.mock
    async def test_missing_tag_uses_classifier(self, client: CompletionClient):
        respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply("你好"))

        result = await client.translate_with_auto_detect("こんにちは")

        assert (result.source_lang, result.target_lang) == (LanguageCode.JA, LanguageCode.ZH)

    @respx.mock
    async def test_missing_tag_without_cjk_input_fails(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply("你好"))

        with pytest.raises(TranslationError) as exc_info:
            await client.translate_with_auto_detect("hello")

        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert route.call_count == MAX_RETRIES + 1

    @respx.mock
    async def test_empty_body_is_retried(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(
            side_effect=[_reply("ja->zh"), _reply("ja->zh\n你好")]
        )

        result = await client.translate_with_auto_detect("こんにちは")

        assert result.translated_text == "你好"
        assert route.call_count == 2
        assert _sleeps(client) == [VALIDATION_RETRY_DELAY]

    @respx.mock
    async def test_echo_is_rejected(self, client: CompletionClient):
        respx.post(DEFAULT_ENDPOINT_URL).mock(
            side_effect=[_reply("ja->zh\nこんにちは"), _reply("ja->zh\n你好")]
        )

        result = await client.translate_with_auto_detect("こんにちは")

        assert result.translated_text == "你好"

    @respx.mock
    async def test_non_cjk_output_is_rejected(self, client: CompletionClient):
        route = respx.post(DEFAULT_ENDPOINT_URL).mock(return_value=_reply("ja->zh\nHello"))

        with pytest.raises(TranslationError, match="CJK"):
            await client.translate_with_auto_detect("こんにちは")

        assert route.call_count == MAX_RETRIES + 1
