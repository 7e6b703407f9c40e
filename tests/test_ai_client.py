# tests/test_ai_client.py

import asyncio
import json

import httpx
import pytest

from supportpilot.backend.app.ai.client import (
    DEFAULT_MESSAGES,
    AiErrorKind,
    AiGeneration,
    GenerationRegistry,
    GenerationState,
    classify_status,
)

ANALYSIS = {
    "customerReply": "We are on it.",
    "qaSummary": "Login spinner hangs after SSO redirect.",
    "followUpQuestions": ["Which identity provider?"],
}


def factory(handler):
    return lambda: httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://gateway"
    )


def test_success_posts_ticket_without_ai_state(make_ticket):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=ANALYSIS)

    ticket = make_ticket(ai_output_version_counter=3)
    generation = AiGeneration(factory(handler))
    result = asyncio.run(generation.run(ticket))

    assert result.customer_reply == "We are on it."
    assert generation.state == GenerationState.SUCCESS
    assert generation.error is None
    assert seen[0].url.path == "/api/ai/ticket-analysis"
    body = json.loads(seen[0].content)
    assert body["ticket"]["id"] == ticket.id
    assert "aiOutputVersionCounter" not in body["ticket"]


def test_classify_status():
    assert classify_status(401) == AiErrorKind.AUTH
    assert classify_status(403) == AiErrorKind.AUTH
    assert classify_status(429) == AiErrorKind.RATE_LIMIT
    assert classify_status(502) == AiErrorKind.UPSTREAM
    assert classify_status(400) == AiErrorKind.UPSTREAM


def test_error_body_message_is_surfaced(make_ticket):
    def handler(request):
        return httpx.Response(429, json={"error": "OpenAI quota/rate limit exceeded."})

    generation = AiGeneration(factory(handler))
    assert asyncio.run(generation.run(make_ticket())) is None
    assert generation.state == GenerationState.ERROR
    assert generation.error_kind == AiErrorKind.RATE_LIMIT
    assert generation.error == "OpenAI quota/rate limit exceeded."


def test_error_without_body_uses_default_message(make_ticket):
    def handler(request):
        return httpx.Response(401, text="denied")

    generation = AiGeneration(factory(handler))
    asyncio.run(generation.run(make_ticket()))
    assert generation.error_kind == AiErrorKind.AUTH
    assert generation.error == DEFAULT_MESSAGES[AiErrorKind.AUTH]


def test_network_failure(make_ticket):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    generation = AiGeneration(factory(handler))
    assert asyncio.run(generation.run(make_ticket())) is None
    assert generation.error_kind == AiErrorKind.NETWORK


def test_malformed_success_body(make_ticket):
    def handler(request):
        return httpx.Response(200, json={"customerReply": "Only this"})

    generation = AiGeneration(factory(handler))
    assert asyncio.run(generation.run(make_ticket())) is None
    assert generation.error_kind == AiErrorKind.MALFORMED

    def not_json(request):
        return httpx.Response(200, text="<html>oops</html>")

    generation = AiGeneration(factory(not_json))
    asyncio.run(generation.run(make_ticket()))
    assert generation.error_kind == AiErrorKind.MALFORMED


def test_second_run_while_loading_is_refused(make_ticket):
    calls = []

    async def scenario():
        release = asyncio.Event()

        async def handler(request):
            calls.append(request)
            await release.wait()
            return httpx.Response(200, json=ANALYSIS)

        generation = AiGeneration(factory(handler))
        ticket = make_ticket()
        first = asyncio.create_task(generation.run(ticket))
        await asyncio.sleep(0)
        assert generation.is_loading

        second = await generation.run(ticket)
        release.set()
        return second, await first, generation

    second, first, generation = asyncio.run(scenario())
    assert second is None
    assert first is not None
    assert len(calls) == 1
    assert generation.state == GenerationState.SUCCESS


def test_retry_after_error_clears_previous_error(make_ticket):
    responses = [httpx.Response(502, json={"error": "OpenAI request failed."}), httpx.Response(200, json=ANALYSIS)]

    def handler(request):
        return responses.pop(0)

    generation = AiGeneration(factory(handler))
    ticket = make_ticket()
    asyncio.run(generation.run(ticket))
    assert generation.error_kind == AiErrorKind.UPSTREAM

    assert asyncio.run(generation.run(ticket)) is not None
    assert generation.error is None
    assert generation.error_kind is None


def test_reset_returns_to_idle(make_ticket):
    generation = AiGeneration(factory(lambda request: httpx.Response(500)))
    asyncio.run(generation.run(make_ticket()))
    generation.reset()
    assert generation.state == GenerationState.IDLE
    assert generation.error is None


def test_registry_keeps_one_generation_per_ticket():
    registry = GenerationRegistry(factory(lambda request: httpx.Response(200, json=ANALYSIS)))
    assert registry.peek("a") is None
    first = registry.for_ticket("a")
    assert registry.for_ticket("a") is first
    assert registry.for_ticket("b") is not first
    registry.discard("a")
    assert registry.peek("a") is None
    registry.discard("missing")


def test_cancelled_run_can_be_retried(make_ticket):
    slow = [True]

    async def handler(request):
        if slow.pop():
            await asyncio.sleep(10)
        return httpx.Response(200, json=ANALYSIS)

    async def scenario():
        generation = AiGeneration(factory(handler))
        ticket = make_ticket()
        task = asyncio.create_task(generation.run(ticket))
        while not generation.is_loading or slow:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        interrupted = (generation.state, generation.error_kind)
        slow.append(False)
        return interrupted, await generation.run(ticket), generation

    interrupted, retried, generation = asyncio.run(scenario())
    assert interrupted == (GenerationState.ERROR, AiErrorKind.NETWORK)
    assert retried is not None
    assert generation.state == GenerationState.SUCCESS


def test_unexpected_failure_ends_in_error_state(make_ticket):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise RuntimeError("transport bug")
        return httpx.Response(200, json=ANALYSIS)

    generation = AiGeneration(factory(handler))
    ticket = make_ticket()
    assert asyncio.run(generation.run(ticket)) is None
    assert generation.state == GenerationState.ERROR
    assert generation.error_kind == AiErrorKind.NETWORK

    assert asyncio.run(generation.run(ticket)) is not None
    assert len(calls) == 2
