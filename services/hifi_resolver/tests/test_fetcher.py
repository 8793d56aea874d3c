import asyncio

import httpx
import pytest

from services.hifi_resolver.errors import (
    ExhaustionFault,
    RequestFault,
    ResourceNotFound,
    TransientServerFault,
)
from services.hifi_resolver.fetcher import FallbackFetcher, classify_response
from services.hifi_resolver.models import AttemptOutcome
from services.hifi_resolver.server_pool import ServerPool
from services.hifi_resolver.tests.fakes import (
    SERVERS,
    FirstChoice,
    ProxyCluster,
    json_response,
    make_fetcher,
    status_response,
    text_response,
)

ALPHA, BETA, GAMMA = (httpx.URL(server).host for server in SERVERS)


@pytest.mark.parametrize(
    ("status", "body", "expected"),
    [
        (200, '{"items": []}', AttemptOutcome.SUCCESS),
        (200, "<!DOCTYPE html><html></html>", AttemptOutcome.SERVICE_UNAVAILABLE),
        (200, "  \n<html><body>maintenance</body></html>", AttemptOutcome.SERVICE_UNAVAILABLE),
        (200, "{not json", AttemptOutcome.MALFORMED_PAYLOAD),
        (200, "", AttemptOutcome.MALFORMED_PAYLOAD),
        (429, "slow down", AttemptOutcome.RATE_LIMITED),
        (402, "payment required", AttemptOutcome.SERVICE_UNAVAILABLE),
        (404, "missing", AttemptOutcome.NOT_FOUND),
        (400, "bad id", AttemptOutcome.CLIENT_ERROR),
        (403, "forbidden", AttemptOutcome.CLIENT_ERROR),
        (500, "boom", AttemptOutcome.SERVER_ERROR),
        (503, "unavailable", AttemptOutcome.SERVER_ERROR),
        (304, "", AttemptOutcome.SERVICE_UNAVAILABLE),
    ],
)
def test_classify_response(status: int, body: str, expected: AttemptOutcome) -> None:
    attempt = classify_response("https://alpha.example", "/search/", status, body)

    assert attempt.outcome is expected
    assert attempt.status == status


def test_classify_response_keeps_parsed_payload() -> None:
    attempt = classify_response("https://alpha.example", "/album/", 200, '[{"id": 1}]')

    assert attempt.payload == [{"id": 1}]


@pytest.mark.asyncio
async def test_returns_first_successful_payload(cluster: ProxyCluster) -> None:
    cluster.on_all(json_response({"items": [1, 2]}))

    payload = await make_fetcher(cluster).fetch("/search/", params={"s": "daft punk", "limit": 5})

    assert payload == {"items": [1, 2]}
    assert cluster.hosts == [ALPHA]
    request = cluster.requests[0]
    assert request.url.path == "/search/"
    assert request.url.params["s"] == "daft punk"
    assert request.url.params["limit"] == "5"
    assert request.headers["accept"] == "application/json"


@pytest.mark.asyncio
async def test_rate_limited_server_is_skipped_silently(cluster: ProxyCluster) -> None:
    cluster.on(SERVERS[0], status_response(429))
    cluster.on(SERVERS[1], json_response({"ok": True}))

    payload = await make_fetcher(cluster).fetch("/track/", params={"id": 1})

    assert payload == {"ok": True}
    assert cluster.hosts == [ALPHA, BETA]


@pytest.mark.asyncio
async def test_not_found_on_one_mirror_continues(cluster: ProxyCluster) -> None:
    cluster.on(SERVERS[0], status_response(404))
    cluster.on(SERVERS[1], status_response(404))
    cluster.on(SERVERS[2], json_response({"id": 7}))

    assert await make_fetcher(cluster).fetch("/album/", params={"id": 7}) == {"id": 7}
    assert cluster.hosts == [ALPHA, BETA, GAMMA]


@pytest.mark.asyncio
async def test_not_found_everywhere_raises_resource_not_found(cluster: ProxyCluster) -> None:
    cluster.on_all(status_response(404))

    with pytest.raises(ResourceNotFound):
        await make_fetcher(cluster).fetch("/album/", params={"id": 7})
    assert len(cluster.requests) == len(SERVERS)


@pytest.mark.asyncio
async def test_html_everywhere_raises_exhaustion_fault(cluster: ProxyCluster) -> None:
    cluster.on(SERVERS[0], text_response("<!DOCTYPE html><p>down</p>"))
    cluster.on(SERVERS[1], text_response("<html><body>502</body></html>"))
    cluster.on(SERVERS[2], text_response("<!doctype html>"))

    with pytest.raises(ExhaustionFault) as excinfo:
        await make_fetcher(cluster).fetch("/search/")

    fault = excinfo.value
    assert fault.attempts == 3
    assert isinstance(fault.last_fault, TransientServerFault)
    assert fault.last_fault.server == SERVERS[2]
    assert fault.last_fault.outcome is AttemptOutcome.SERVICE_UNAVAILABLE


@pytest.mark.asyncio
async def test_exhaustion_reports_most_recent_fault(cluster: ProxyCluster) -> None:
    cluster.on(SERVERS[0], status_response(404))
    cluster.on(SERVERS[1], text_response("{broken"))
    cluster.on(SERVERS[2], status_response(502))

    with pytest.raises(ExhaustionFault) as excinfo:
        await make_fetcher(cluster).fetch("/track/")

    assert excinfo.value.last_fault.outcome is AttemptOutcome.SERVER_ERROR
    assert excinfo.value.last_fault.status == 502


@pytest.mark.asyncio
async def test_client_error_aborts_without_trying_other_servers(cluster: ProxyCluster) -> None:
    cluster.on(SERVERS[0], status_response(429))
    cluster.on(SERVERS[1], text_response("invalid quality", status=400))
    cluster.on(SERVERS[2], json_response({"ok": True}))

    with pytest.raises(RequestFault) as excinfo:
        await make_fetcher(cluster).fetch("/track/", params={"id": 1, "quality": "BOGUS"})

    assert excinfo.value.status == 400
    assert excinfo.value.server == SERVERS[1]
    assert "invalid quality" in excinfo.value.detail
    assert cluster.hosts == [ALPHA, BETA]


@pytest.mark.asyncio
async def test_network_errors_and_timeouts_fall_through(cluster: ProxyCluster) -> None:
    async def hang(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={"too": "late"})

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    cluster.on(SERVERS[0], hang)
    cluster.on(SERVERS[1], refuse)
    cluster.on(SERVERS[2], json_response({"ok": True}))

    payload = await make_fetcher(cluster, timeout=0.05).fetch("/search/")

    assert payload == {"ok": True}
    assert cluster.hosts == [ALPHA, BETA, GAMMA]


@pytest.mark.asyncio
async def test_timeout_everywhere_is_exhaustion(cluster: ProxyCluster) -> None:
    async def hang(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={})

    cluster.on_all(hang)

    with pytest.raises(ExhaustionFault) as excinfo:
        await make_fetcher(cluster, timeout=0.05).fetch("/search/")

    assert excinfo.value.last_fault.outcome is AttemptOutcome.TIMEOUT


@pytest.mark.asyncio
async def test_external_cancellation_stops_the_sweep(cluster: ProxyCluster) -> None:
    started = asyncio.Event()

    async def slow(request: httpx.Request) -> httpx.Response:
        started.set()
        await asyncio.sleep(5)
        return httpx.Response(200, json={})

    cluster.on_all(slow)
    task = asyncio.create_task(make_fetcher(cluster, timeout=10).fetch("/track/"))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert cluster.hosts == [ALPHA]


@pytest.mark.asyncio
async def test_injected_plain_client_still_asks_for_json(cluster: ProxyCluster) -> None:
    cluster.on_all(json_response({"ok": True}))
    client = httpx.AsyncClient(transport=httpx.MockTransport(cluster))
    fetcher = FallbackFetcher(ServerPool(SERVERS, rng=FirstChoice()), client, timeout=1.0)

    await fetcher.fetch("/search/", params={"s": "x"}, headers={"X-Trace": "1"})

    request = cluster.requests[0]
    assert request.headers["accept"] == "application/json"
    assert request.headers["x-trace"] == "1"
